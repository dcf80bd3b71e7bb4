"""Usage analysis: declarations, class files, module scanning and resolution."""

from depprune.analysis.classfile import ClassFileError, ClassInfo, extract_class_info
from depprune.analysis.declarations import parse_declaration, parse_dependencies
from depprune.analysis.resolver import analyze_project, resolve_usage
from depprune.analysis.scanner import scan_module, scan_modules

__all__ = [
    "ClassFileError",
    "ClassInfo",
    "analyze_project",
    "extract_class_info",
    "parse_declaration",
    "parse_dependencies",
    "resolve_usage",
    "scan_module",
    "scan_modules",
]
