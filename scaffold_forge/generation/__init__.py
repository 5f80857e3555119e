"""
Artifact generation for Scaffold Forge: planning, rendering and the
all-or-nothing orchestrator that writes the files.
"""

from .catalogue import TemplateCatalogue, TEMPLATE_DIR
from .renderer import TemplateRenderer, merge_at_marker, remove_at_marker, marker_token
from .planner import ArtifactPlanner, generator_stamp
from .filesystem import FileSystem, LocalFileSystem, InMemoryFileSystem
from .orchestrator import GenerationOrchestrator, read_stamp

__all__ = [
    'TemplateCatalogue',
    'TEMPLATE_DIR',
    'TemplateRenderer',
    'merge_at_marker',
    'remove_at_marker',
    'marker_token',
    'ArtifactPlanner',
    'generator_stamp',
    'FileSystem',
    'LocalFileSystem',
    'InMemoryFileSystem',
    'GenerationOrchestrator',
    'read_stamp',
]
