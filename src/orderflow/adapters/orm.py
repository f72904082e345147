"""
Tables SQLAlchemy (Core) du store relationnel.

On définit les tables séparément du modèle de domaine : le domaine
manipule des records (dict), le SqlAlchemyStore fait le pont.
Les noms physiques des tables viennent de la configuration.
"""

from sqlalchemy import Column, Integer, MetaData, Numeric, String, Table

from orderflow import config

metadata = MetaData()

orders = Table(
    config.get_orders_table(),
    metadata,
    Column("order_id", String(64), primary_key=True),
    Column("customer_id", String(255), nullable=False),
    Column("product_id", String(255), nullable=False),
    Column("quantity", Integer, nullable=False),
    Column("total_amount", Numeric(12, 2), nullable=False),
    Column("status", String(32), nullable=False),
    Column("created_at", String(40), nullable=False),
    Column("updated_at", String(40), nullable=False),
)

inventory = Table(
    config.get_inventory_table(),
    metadata,
    Column("product_id", String(255), primary_key=True),
    Column("stock", Integer, nullable=False),
)
