"""Shared constant values for codeweave."""

UNIT_NAMESPACE = "woven"
UNIT_PREFIX = "gen"
NESTED_SEPARATOR = "__"

SOURCE_SUFFIX = ".py"
ARTIFACT_SUFFIX = ".pyc"

DEFAULT_RESULT_TYPE = "object"

STAGING_DIR_ENV = "CODEWEAVE_STAGING_DIR"
SEARCH_PATH_ENV = "CODEWEAVE_PATH"
ARCHIVE_SUFFIXES = (".zip", ".whl", ".egg")

SOURCE_BANNER = "###### codeweave GENERATED CODE #####"
SOURCE_BANNER_END = "###### END #####"

# Generated units import their runtime support from these modules.
SUPPORT_MODULE = "codeweave.bindings"
INVOCABLE_MODULE = "codeweave.runtime.unit"

__all__ = [
    "UNIT_NAMESPACE",
    "UNIT_PREFIX",
    "NESTED_SEPARATOR",
    "SOURCE_SUFFIX",
    "ARTIFACT_SUFFIX",
    "DEFAULT_RESULT_TYPE",
    "STAGING_DIR_ENV",
    "SEARCH_PATH_ENV",
    "ARCHIVE_SUFFIXES",
    "SOURCE_BANNER",
    "SOURCE_BANNER_END",
    "SUPPORT_MODULE",
    "INVOCABLE_MODULE",
]
