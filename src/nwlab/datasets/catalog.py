"""
Northwind dataset catalog.

Sources:
- bitnine-oss/import-northwind: pipe-delimited CSV exports (tabular + graph)
- jasny/mongodb-northwind: mongoimport-ready JSON (document)
- neo4j-graph-examples/northwind: Cypher build script (graph)

Entities are declared parents-first, but load order is always derived from
the foreign-key references, never from this listing.
"""

from __future__ import annotations

from nwlab.datasets.base import Artifact, BackendKind, Column, Entity, Normalization, Source

CSV_ARCHIVE = Source(
    key="import-northwind",
    url="https://github.com/bitnine-oss/import-northwind/archive/refs/heads/master.zip",
    archive=True,
)
JSON_ARCHIVE = Source(
    key="mongodb-northwind",
    url="https://github.com/jasny/mongodb-northwind/archive/refs/heads/master.zip",
    archive=True,
)
CYPHER_SCRIPT = Source(
    key="northwind-cypher",
    url="https://raw.githubusercontent.com/neo4j-graph-examples/northwind/main/scripts/northwind.cypher",
)

GRAPH_SCRIPT = "northwind.cypher"


CUSTOMERS = Entity(
    name="customers",
    columns=(
        Column("customer_id", "VARCHAR(5)", nullable=False),
        Column("company_name", "VARCHAR(40)", nullable=False),
        Column("contact_name", "VARCHAR(30)"),
        Column("contact_title", "VARCHAR(30)"),
        Column("address", "VARCHAR(60)"),
        Column("city", "VARCHAR(15)"),
        Column("region", "VARCHAR(15)"),
        Column("postal_code", "VARCHAR(10)"),
        Column("country", "VARCHAR(15)"),
        Column("phone", "VARCHAR(24)"),
        Column("fax", "VARCHAR(24)"),
    ),
    primary_key=("customer_id",),
    csv_file="customers.csv",
    json_file="customers.json",
    graph_label="Customer",
)

PRODUCTS = Entity(
    name="products",
    columns=(
        Column("product_id", "SERIAL", nullable=False),
        Column("product_name", "VARCHAR(40)", nullable=False),
        Column("supplier_id", "INTEGER"),
        Column("category_id", "INTEGER"),
        Column("quantity_per_unit", "VARCHAR(20)"),
        Column("list_price", "DECIMAL(10,2)"),
        Column("units_in_stock", "INTEGER"),
        Column("units_on_order", "INTEGER"),
        Column("reorder_level", "INTEGER"),
        Column("discontinued", "BOOLEAN", default="FALSE"),
    ),
    primary_key=("product_id",),
    csv_file="products.csv",
    json_file="products.json",
    graph_label="Product",
)

ORDERS = Entity(
    name="orders",
    columns=(
        Column("order_id", "SERIAL", nullable=False),
        Column("customer_id", "VARCHAR(5)", references="customers.customer_id"),
        Column("employee_id", "INTEGER"),
        Column("order_date", "DATE"),
        Column("required_date", "DATE"),
        Column("shipped_date", "DATE"),
        Column("ship_via", "INTEGER"),
        Column("freight", "DECIMAL(10,2)"),
        Column("ship_name", "VARCHAR(40)"),
        Column("ship_address", "VARCHAR(60)"),
        Column("ship_city", "VARCHAR(15)"),
        Column("ship_region", "VARCHAR(15)"),
        Column("ship_postal_code", "VARCHAR(10)"),
        Column("ship_country", "VARCHAR(15)"),
    ),
    primary_key=("order_id",),
    csv_file="orders.csv",
    json_file="orders.json",
    null_token="NULL",
    graph_label="Order",
)

ORDER_DETAILS = Entity(
    name="order_details",
    columns=(
        Column("order_id", "INTEGER", nullable=False, references="orders.order_id"),
        Column("product_id", "INTEGER", nullable=False, references="products.product_id"),
        Column("list_price", "DECIMAL(10,2)", nullable=False),
        Column("quantity", "INTEGER", nullable=False),
        Column("discount", "REAL", default="0"),
    ),
    primary_key=("order_id", "product_id"),
    csv_file="order-details.csv",
    graph_relationship="ORDERS",
)

ENTITIES: tuple[Entity, ...] = (CUSTOMERS, PRODUCTS, ORDERS, ORDER_DETAILS)


def get_entity(name: str) -> Entity:
    """Look up an entity by name."""
    for entity in ENTITIES:
        if entity.name == name:
            return entity
    raise KeyError(f"Unknown entity: {name}")


def build_artifacts(entities: tuple[Entity, ...] = ENTITIES) -> tuple[Artifact, ...]:
    """Every staged file needed to load ``entities`` on all three backends."""
    artifacts: list[Artifact] = []

    for entity in entities:
        csv_norm = Normalization(strip_trailing_separator=entity.delimiter)
        member = f"import-northwind-master/{entity.csv_file}"
        artifacts.append(
            Artifact(CSV_ARCHIVE, f"postgres/{entity.csv_file}", BackendKind.TABULAR, member, csv_norm)
        )
        if entity.served_by(BackendKind.GRAPH):
            artifacts.append(
                Artifact(CSV_ARCHIVE, f"neo4j/{entity.csv_file}", BackendKind.GRAPH, member, csv_norm)
            )
        if entity.json_file:
            artifacts.append(
                Artifact(
                    JSON_ARCHIVE,
                    f"mongo/{entity.json_file}",
                    BackendKind.DOCUMENT,
                    f"mongodb-northwind-master/json/{entity.json_file}",
                )
            )

    artifacts.append(Artifact(CYPHER_SCRIPT, f"neo4j/{GRAPH_SCRIPT}", BackendKind.GRAPH))
    return tuple(artifacts)


ARTIFACTS = build_artifacts()


def artifacts_for(kinds: set[BackendKind] | frozenset[BackendKind]) -> tuple[Artifact, ...]:
    """Staged files needed by the given backend families."""
    return tuple(a for a in ARTIFACTS if a.kind in kinds)
