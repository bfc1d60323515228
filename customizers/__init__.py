"""Config customizer pipeline.

Steps rewrite the launch-private copy of the distribution's config files in
a fixed order. A step may return a derived LaunchContext (for example with
resolved ports); later steps and the caller see that context.
"""
from typing import Optional, Sequence, Tuple

from loguru import logger

from config.schema import LaunchContext
from customizers.base import FileCustomizer
from customizers.java_compat import JavaCompatibilityCustomizer
from customizers.jvm_options import JvmOptionsCustomizer
from customizers.main_config import MainConfigCustomizer
from customizers.numa import NumaCustomizer
from customizers.random_ports import RandomPortCustomizer
from errors import ConfigurationError
from port_allocator import PortAllocator

__all__ = [
    "CustomizerPipeline",
    "FileCustomizer",
    "JavaCompatibilityCustomizer",
    "JvmOptionsCustomizer",
    "MainConfigCustomizer",
    "NumaCustomizer",
    "RandomPortCustomizer",
    "default_pipeline",
]


class CustomizerPipeline:
    """Ordered, immutable sequence of customizer steps."""

    def __init__(self, steps: Sequence[FileCustomizer]):
        self.steps: Tuple[FileCustomizer, ...] = tuple(steps)

    def run(self, context: LaunchContext) -> LaunchContext:
        """Apply every step to every matching file.

        Returns:
            LaunchContext: The effective context after all steps

        Raises:
            ConfigurationError: If any step fails; nothing is rolled back
        """
        for step in self.steps:
            for file in context.file_set.files:
                if not step.is_match(file, context):
                    continue
                try:
                    derived: Optional[LaunchContext] = step.customize(file, context)
                except Exception as e:
                    logger.error("Customizer failed", step=step.name, file=str(file), error=str(e))
                    raise ConfigurationError(f"Customizer '{step.name}' failed on {file}: {e}") from e
                if derived is not None:
                    context = derived
                logger.debug("Customized file", step=step.name, file=file.name)
        return context


def default_pipeline(allocator: Optional[PortAllocator] = None) -> CustomizerPipeline:
    """The standard five steps, bound to one launch's allocator."""
    allocator = allocator or PortAllocator()
    return CustomizerPipeline((
        MainConfigCustomizer(),
        JvmOptionsCustomizer(),
        JavaCompatibilityCustomizer(),
        NumaCustomizer(),
        RandomPortCustomizer(allocator),
    ))
