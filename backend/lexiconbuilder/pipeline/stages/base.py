"""Abstract base class for pipeline stages.

Each stage in the pipeline inherits from PipelineStage and implements:
- name: A string identifier for logging and manifests
- execute(): The stage's main logic (a coroutine)

Stages communicate only through files under their stage directory; the
typed input/output objects carry configuration and summaries.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Generic, TypeVar

# Input and Output type variables for type-safe stage composition
InputT = TypeVar("InputT")
OutputT = TypeVar("OutputT")


class PipelineStage(ABC, Generic[InputT, OutputT]):
    """Abstract base class for all pipeline stages.

    Type Parameters:
        InputT: The input type for this stage
        OutputT: The output type from this stage
    """

    @property
    @abstractmethod
    def name(self) -> str:
        """Return the stage name, e.g. ``01_fetch``."""
        ...

    @abstractmethod
    async def execute(self, input_data: InputT) -> OutputT:
        """Execute the stage logic.

        Args:
            input_data: The stage input

        Returns:
            The stage output
        """
        ...
