"""
Module: stock_kernel.db.triggers
Responsibility: Installing, removing and verifying database-level
    immutability triggers (Layer 2 of 2).  This is the database-level
    complement to the ORM-level listeners in db/immutability.py.
Architecture position: Kernel > DB.  May import from db/ only.  MUST NOT
    import from models/, services/, selectors/, domain/, or outer layers.

Invariants enforced:
    stock_movements   -- no UPDATE, no DELETE.
    stock_corrections -- no UPDATE, no DELETE.

Failure modes:
    - PostgreSQL RAISE EXCEPTION / SQLite RAISE(ABORT) on any trigger
      violation (surfaced by SQLAlchemy as IntegrityError or
      OperationalError).
    - ValueError for a dialect with no trigger definitions.

Audit relevance:
    Even if the ORM layer is bypassed (raw SQL, bulk operations, direct
    database access), the triggers prevent modification of ledger facts.
"""

from sqlalchemy import text
from sqlalchemy.engine import Engine

# =============================================================================
# Trigger definitions
# =============================================================================

IMMUTABLE_TABLES = ("stock_movements", "stock_corrections")

ALL_TRIGGER_NAMES = [
    f"trg_{table}_immutability_{op}"
    for table in IMMUTABLE_TABLES
    for op in ("update", "delete")
]


def _postgresql_statements() -> list[str]:
    statements = [
        """
        CREATE OR REPLACE FUNCTION stock_ledger_reject_mutation()
        RETURNS TRIGGER AS $$
        BEGIN
            RAISE EXCEPTION USING MESSAGE =
                'IMMUTABILITY_VIOLATION: ' || TG_OP || ' on '
                || TG_TABLE_NAME || ' is not allowed';
        END;
        $$ LANGUAGE plpgsql
        """,
    ]
    for table in IMMUTABLE_TABLES:
        for op in ("update", "delete"):
            name = f"trg_{table}_immutability_{op}"
            statements.append(f"DROP TRIGGER IF EXISTS {name} ON {table}")
            statements.append(
                f"""
                CREATE TRIGGER {name}
                BEFORE {op.upper()} ON {table}
                FOR EACH ROW EXECUTE FUNCTION stock_ledger_reject_mutation()
                """
            )
    return statements


def _sqlite_statements() -> list[str]:
    statements = []
    for table in IMMUTABLE_TABLES:
        for op in ("update", "delete"):
            name = f"trg_{table}_immutability_{op}"
            statements.append(f"DROP TRIGGER IF EXISTS {name}")
            statements.append(
                f"""
                CREATE TRIGGER {name}
                BEFORE {op.upper()} ON {table}
                BEGIN
                    SELECT RAISE(ABORT, 'IMMUTABILITY_VIOLATION: {op.upper()} on {table} is not allowed');
                END
                """
            )
    return statements


def _drop_statements(dialect: str) -> list[str]:
    if dialect == "postgresql":
        statements = [
            f"DROP TRIGGER IF EXISTS trg_{table}_immutability_{op} ON {table}"
            for table in IMMUTABLE_TABLES
            for op in ("update", "delete")
        ]
        statements.append("DROP FUNCTION IF EXISTS stock_ledger_reject_mutation()")
        return statements
    if dialect == "sqlite":
        return [f"DROP TRIGGER IF EXISTS {name}" for name in ALL_TRIGGER_NAMES]
    raise ValueError(f"No immutability triggers defined for dialect '{dialect}'")


def _install_statements(dialect: str) -> list[str]:
    if dialect == "postgresql":
        return _postgresql_statements()
    if dialect == "sqlite":
        return _sqlite_statements()
    raise ValueError(f"No immutability triggers defined for dialect '{dialect}'")


# =============================================================================
# Public API
# =============================================================================


def install_immutability_triggers(engine: Engine) -> None:
    """
    Install database-level immutability triggers.

    Preconditions: Tables must exist (call after create_all()).
    Postconditions: All triggers in ALL_TRIGGER_NAMES are installed.
        Installation is idempotent (existing triggers are replaced).
    """
    with engine.begin() as conn:
        for statement in _install_statements(engine.dialect.name):
            conn.execute(text(statement))


def uninstall_immutability_triggers(engine: Engine) -> None:
    """
    Remove database-level immutability triggers.

    WARNING: Only for test teardown.  Leaving triggers uninstalled lets raw
    SQL rewrite stock history.
    """
    with engine.begin() as conn:
        for statement in _drop_statements(engine.dialect.name):
            conn.execute(text(statement))


def get_installed_triggers(engine: Engine) -> list[str]:
    """List the immutability triggers present in the database."""
    dialect = engine.dialect.name
    if dialect == "postgresql":
        query = "SELECT tgname FROM pg_trigger WHERE NOT tgisinternal"
    elif dialect == "sqlite":
        query = "SELECT name FROM sqlite_master WHERE type = 'trigger'"
    else:
        raise ValueError(f"No immutability triggers defined for dialect '{dialect}'")

    with engine.connect() as conn:
        names = {row[0] for row in conn.execute(text(query))}
    return sorted(name for name in ALL_TRIGGER_NAMES if name in names)


def triggers_installed(engine: Engine) -> bool:
    """True iff every trigger in ALL_TRIGGER_NAMES is installed."""
    return len(get_installed_triggers(engine)) == len(ALL_TRIGGER_NAMES)
