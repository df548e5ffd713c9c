"""Initial schema: file mappings and typed records (idempotent).

Revision ID: 001_initial_schema
Revises: 
Create Date: 2025-06-02 12:00:00
"""

revision = "001_initial_schema"
down_revision = None
branch_labels = None
depends_on = None

from alembic import op
import sqlalchemy as sa


def upgrade() -> None:
    conn = op.get_bind()
    # Raw SQL with IF NOT EXISTS so databases created by the app at startup can be stamped safely.
    conn.execute(sa.text("""
    CREATE TABLE IF NOT EXISTS file_cids (
        id SERIAL PRIMARY KEY,
        filename TEXT NOT NULL,
        cid TEXT NOT NULL,
        uploaded_at TIMESTAMP WITH TIME ZONE NOT NULL DEFAULT now()
    );
    """))
    conn.execute(sa.text("CREATE INDEX IF NOT EXISTS idx_file_cids_filename ON file_cids (filename);"))
    conn.execute(sa.text("CREATE INDEX IF NOT EXISTS idx_file_cids_cid ON file_cids (cid);"))

    conn.execute(sa.text("""
    CREATE TABLE IF NOT EXISTS paper (
        cid TEXT PRIMARY KEY,
        title TEXT NOT NULL,
        journal TEXT,
        year INTEGER,
        keywords JSON,
        created_at TIMESTAMP WITH TIME ZONE NOT NULL DEFAULT now()
    );
    """))

    conn.execute(sa.text("""
    CREATE TABLE IF NOT EXISTS genome (
        cid TEXT PRIMARY KEY,
        organism TEXT NOT NULL,
        assembly_version TEXT,
        notes TEXT,
        created_at TIMESTAMP WITH TIME ZONE NOT NULL DEFAULT now()
    );
    """))

    conn.execute(sa.text("""
    CREATE TABLE IF NOT EXISTS spectrum (
        cid TEXT PRIMARY KEY,
        compound TEXT NOT NULL,
        technique_nmr_ir_ms TEXT,
        metadata_json JSON,
        created_at TIMESTAMP WITH TIME ZONE NOT NULL DEFAULT now()
    );
    """))


def downgrade() -> None:
    op.drop_table("spectrum")
    op.drop_table("genome")
    op.drop_table("paper")
    op.drop_index("idx_file_cids_cid", table_name="file_cids")
    op.drop_index("idx_file_cids_filename", table_name="file_cids")
    op.drop_table("file_cids")
