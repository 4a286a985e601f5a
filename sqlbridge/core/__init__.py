"""sqlbridge core: type bridging, statement templates and the template cache.

- types.py: portable <-> native type registry, isolation levels and ``DBNull``
- template.py: ``@name`` / ``?`` placeholder compiler and statement classification
- cache.py: process-wide template cache
"""

from sqlbridge.core.cache import (
    CacheStats,
    TemplateCache,
    TemplateCacheKey,
    configure_template_cache,
    get_template_cache,
    reset_template_cache,
)
from sqlbridge.core.template import (
    StatementKind,
    StatementTemplate,
    classify_statement,
    compile_template,
    has_named_parameters,
)
from sqlbridge.core.types import (
    DEFAULT_TYPE_MAPPINGS,
    DBNull,
    DBNullType,
    IsolationLevel,
    NativeType,
    PortableType,
    TypeMapping,
    TypeRegistry,
    converter_to_native,
    converter_to_portable,
    get_type_registry,
    python_type,
    to_native,
    to_native_isolation,
    to_portable,
    to_portable_isolation,
)

__all__ = (
    "DEFAULT_TYPE_MAPPINGS",
    "CacheStats",
    "DBNull",
    "DBNullType",
    "IsolationLevel",
    "NativeType",
    "PortableType",
    "StatementKind",
    "StatementTemplate",
    "TemplateCache",
    "TemplateCacheKey",
    "TypeMapping",
    "TypeRegistry",
    "classify_statement",
    "compile_template",
    "configure_template_cache",
    "converter_to_native",
    "converter_to_portable",
    "get_template_cache",
    "get_type_registry",
    "has_named_parameters",
    "python_type",
    "reset_template_cache",
    "to_native",
    "to_native_isolation",
    "to_portable",
    "to_portable_isolation",
)
