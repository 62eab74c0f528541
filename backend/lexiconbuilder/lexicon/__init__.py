"""Reference lexicon (WordNet) loading, categories and synset embeddings."""

from lexiconbuilder.lexicon.wordnet import ReferenceLexicon, Synset, categories_for, match_category

__all__ = ["ReferenceLexicon", "Synset", "categories_for", "match_category"]
