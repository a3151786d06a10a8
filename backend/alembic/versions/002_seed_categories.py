"""Seed the tap.az category catalog

Revision ID: 002
Revises: 001
Create Date: 2026-10-01 00:10:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


revision: str = '002'
down_revision: Union[str, None] = '001'
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


# (slug, name, parent_slug, is_active)
CATEGORIES = [
    ('elektronika', 'Elektronika', None, True),
    ('elektronika/telefonlar', 'Telefonlar', 'elektronika', True),
    ('elektronika/noutbuklar', 'Noutbuklar', 'elektronika', True),
    ('elektronika/audio-video', 'Audio və video', 'elektronika', True),
    ('neqliyyat', 'Nəqliyyat', None, True),
    ('dasinmaz-emlak', 'Daşınmaz əmlak', None, True),
    ('ev-ve-bag-ucun', 'Ev və bağ üçün', None, True),
    ('mebel-ve-interyer', 'Mebel və interyer', 'ev-ve-bag-ucun', True),
    ('meiset-texnikasi', 'Məişət texnikası', None, True),
    ('sexsi-esyalar', 'Şəxsi əşyalar', None, True),
    ('usaq-alemi', 'Uşaq aləmi', None, True),
    ('hobbi-ve-asude', 'Hobbi və asudə', None, True),
    ('heyvanlar', 'Heyvanlar', None, True),
    ('xidmetler-ve-biznes', 'Xidmətlər və biznes', None, True),
    # Job ads are not marketplace listings
    ('is-elanlari', 'İş elanları', None, False),
]


def upgrade() -> None:
    categories = sa.table(
        'categories',
        sa.column('slug', sa.String),
        sa.column('name', sa.String),
        sa.column('parent_slug', sa.String),
        sa.column('position', sa.Integer),
        sa.column('is_active', sa.Boolean),
    )
    op.bulk_insert(categories, [
        {'slug': slug, 'name': name, 'parent_slug': parent, 'position': position, 'is_active': active}
        for position, (slug, name, parent, active) in enumerate(CATEGORIES)
    ])


def downgrade() -> None:
    slugs = ", ".join(f"'{slug}'" for slug, _, _, _ in CATEGORIES)
    op.execute(f"DELETE FROM categories WHERE slug IN ({slugs})")
