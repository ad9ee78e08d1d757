# mathword/__init__.py
from .latex_converter import build_nodes, try_build, extract_braced, substitute_symbols
from .inline_segmenter import segment

__all__ = ["build_nodes", "try_build", "extract_braced", "substitute_symbols", "segment"]
