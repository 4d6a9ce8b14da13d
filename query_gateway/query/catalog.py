"""
Catalog (schema introspection) queries.

These statements are generated by the gateway, not supplied by callers, so
they bypass the safety validator. Caller-provided names are always bound as
parameters, never interpolated.
"""

from __future__ import annotations

from typing import Dict

LIST_DATABASES = """
    SELECT datname AS name
    FROM pg_catalog.pg_database
    WHERE NOT datistemplate
      AND datallowconn
    ORDER BY datname
"""

CONNECTION_INFO = """
    SELECT
      version() AS server_version,
      current_database() AS current_database,
      session_user AS login_name,
      current_user AS current_user
"""

LIST_TABLES = """
    SELECT
      n.nspname AS schema_name,
      c.relname AS table_name,
      GREATEST(c.reltuples, 0)::bigint AS row_count,
      ROUND(pg_total_relation_size(c.oid) / 1024.0 / 1024.0, 2) AS size_mb
    FROM pg_catalog.pg_class c
    JOIN pg_catalog.pg_namespace n ON n.oid = c.relnamespace
    WHERE c.relkind IN ('r', 'p')
      AND n.nspname NOT IN ('pg_catalog', 'information_schema')
      AND n.nspname NOT LIKE 'pg_toast%'
    ORDER BY n.nspname, c.relname
"""

LIST_VIEWS = """
    SELECT
      table_schema AS schema_name,
      table_name AS view_name,
      view_definition AS definition
    FROM information_schema.views
    WHERE table_schema NOT IN ('pg_catalog', 'information_schema')
    ORDER BY table_schema, table_name
"""

_LIST_ROUTINES = """
    SELECT
      n.nspname AS schema_name,
      p.proname AS {name_column},
      pg_catalog.pg_get_function_identity_arguments(p.oid) AS arguments{extra_columns}
    FROM pg_catalog.pg_proc p
    JOIN pg_catalog.pg_namespace n ON n.oid = p.pronamespace
    WHERE p.prokind = '{prokind}'
      AND n.nspname NOT IN ('pg_catalog', 'information_schema')
    ORDER BY n.nspname, p.proname
"""

LIST_PROCEDURES = _LIST_ROUTINES.format(name_column="procedure_name", extra_columns="", prokind="p")

LIST_FUNCTIONS = _LIST_ROUTINES.format(
    name_column="function_name",
    extra_columns=",\n      pg_catalog.pg_get_function_result(p.oid) AS return_type",
    prokind="f",
)

LIST_TRIGGERS = """
    SELECT
      n.nspname AS schema_name,
      t.tgname AS trigger_name,
      c.relname AS object_name,
      t.tgenabled = 'D' AS is_disabled,
      pg_catalog.pg_get_triggerdef(t.oid) AS definition
    FROM pg_catalog.pg_trigger t
    JOIN pg_catalog.pg_class c ON c.oid = t.tgrelid
    JOIN pg_catalog.pg_namespace n ON n.oid = c.relnamespace
    WHERE NOT t.tgisinternal
    ORDER BY n.nspname, t.tgname
"""

TABLE_EXISTS = """
    SELECT 1
    FROM information_schema.tables
    WHERE table_schema = %(schema)s AND table_name = %(table)s
"""

TABLE_COLUMNS = """
    SELECT
      column_name,
      data_type,
      character_maximum_length AS max_length,
      is_nullable,
      column_default AS default_value,
      is_identity
    FROM information_schema.columns
    WHERE table_schema = %(schema)s AND table_name = %(table)s
    ORDER BY ordinal_position
"""

TABLE_INDEXES = """
    SELECT
      i.relname AS index_name,
      am.amname AS index_type,
      ix.indisunique AS is_unique,
      ix.indisprimary AS is_primary_key,
      string_agg(a.attname, ', ' ORDER BY k.ord) AS columns
    FROM pg_catalog.pg_index ix
    JOIN pg_catalog.pg_class t ON t.oid = ix.indrelid
    JOIN pg_catalog.pg_namespace n ON n.oid = t.relnamespace
    JOIN pg_catalog.pg_class i ON i.oid = ix.indexrelid
    JOIN pg_catalog.pg_am am ON am.oid = i.relam
    CROSS JOIN LATERAL unnest(ix.indkey) WITH ORDINALITY AS k(attnum, ord)
    JOIN pg_catalog.pg_attribute a ON a.attrelid = t.oid AND a.attnum = k.attnum
    WHERE n.nspname = %(schema)s AND t.relname = %(table)s
    GROUP BY i.relname, am.amname, ix.indisunique, ix.indisprimary
    ORDER BY ix.indisprimary DESC, i.relname
"""

TABLE_FOREIGN_KEYS = """
    SELECT
      con.conname AS foreign_key_name,
      n.nspname AS schema_name,
      t.relname AS table_name,
      a.attname AS column_name,
      rn.nspname AS referenced_schema,
      rt.relname AS referenced_table,
      ra.attname AS referenced_column
    FROM pg_catalog.pg_constraint con
    JOIN pg_catalog.pg_class t ON t.oid = con.conrelid
    JOIN pg_catalog.pg_namespace n ON n.oid = t.relnamespace
    JOIN pg_catalog.pg_class rt ON rt.oid = con.confrelid
    JOIN pg_catalog.pg_namespace rn ON rn.oid = rt.relnamespace
    CROSS JOIN LATERAL unnest(con.conkey, con.confkey) AS k(attnum, ref_attnum)
    JOIN pg_catalog.pg_attribute a ON a.attrelid = con.conrelid AND a.attnum = k.attnum
    JOIN pg_catalog.pg_attribute ra ON ra.attrelid = con.confrelid AND ra.attnum = k.ref_attnum
    WHERE con.contype = 'f'
      AND n.nspname = %(schema)s
      AND t.relname = %(table)s
    ORDER BY con.conname
"""

# Each returns schema_name, object_name, object_type, definition.
OBJECT_DEFINITIONS: Dict[str, str] = {
    "VIEW": """
        SELECT n.nspname AS schema_name, c.relname AS object_name, 'VIEW' AS object_type,
               pg_catalog.pg_get_viewdef(c.oid, true) AS definition
        FROM pg_catalog.pg_class c
        JOIN pg_catalog.pg_namespace n ON n.oid = c.relnamespace
        WHERE c.relkind IN ('v', 'm') AND n.nspname = %(schema)s AND c.relname = %(name)s
    """,
    "PROCEDURE": """
        SELECT n.nspname AS schema_name, p.proname AS object_name, 'PROCEDURE' AS object_type,
               pg_catalog.pg_get_functiondef(p.oid) AS definition
        FROM pg_catalog.pg_proc p
        JOIN pg_catalog.pg_namespace n ON n.oid = p.pronamespace
        WHERE p.prokind = 'p' AND n.nspname = %(schema)s AND p.proname = %(name)s
    """,
    "FUNCTION": """
        SELECT n.nspname AS schema_name, p.proname AS object_name, 'FUNCTION' AS object_type,
               pg_catalog.pg_get_functiondef(p.oid) AS definition
        FROM pg_catalog.pg_proc p
        JOIN pg_catalog.pg_namespace n ON n.oid = p.pronamespace
        WHERE p.prokind = 'f' AND n.nspname = %(schema)s AND p.proname = %(name)s
    """,
    "TRIGGER": """
        SELECT n.nspname AS schema_name, t.tgname AS object_name, 'TRIGGER' AS object_type,
               pg_catalog.pg_get_triggerdef(t.oid, true) AS definition
        FROM pg_catalog.pg_trigger t
        JOIN pg_catalog.pg_class c ON c.oid = t.tgrelid
        JOIN pg_catalog.pg_namespace n ON n.oid = c.relnamespace
        WHERE NOT t.tgisinternal AND n.nspname = %(schema)s AND t.tgname = %(name)s
    """,
}

OBJECT_TYPES = tuple(OBJECT_DEFINITIONS)


__all__ = [
    "CONNECTION_INFO",
    "LIST_DATABASES",
    "LIST_FUNCTIONS",
    "LIST_PROCEDURES",
    "LIST_TABLES",
    "LIST_TRIGGERS",
    "LIST_VIEWS",
    "OBJECT_DEFINITIONS",
    "OBJECT_TYPES",
    "TABLE_COLUMNS",
    "TABLE_EXISTS",
    "TABLE_FOREIGN_KEYS",
    "TABLE_INDEXES",
]
