"""
Store conditionnel (clé-valeur).

Le store offre trois opérations sur une clé unique :
    get(table, key) -> record | None
    put(table, item, condition=None)
    update(table, key, changes, condition=None)

Une écriture conditionnelle ne réussit que si le prédicat est vrai
au moment de l'écriture, évalué atomiquement par le store lui-même.
C'est la seule primitive de contrôle de concurrence du système :
aucun verrou applicatif n'est pris.

Un prédicat non satisfait lève ConditionFailed. Toute autre erreur
(store injoignable, réponse inattendue) remonte telle quelle pour
que le transport puisse redélivrer le message.
"""

from __future__ import annotations

import abc
import logging
from dataclasses import dataclass
from decimal import Decimal
from typing import Any, Mapping, Optional, Union

from boto3.dynamodb.types import TypeDeserializer, TypeSerializer
from botocore.exceptions import ClientError
from sqlalchemy import and_, create_engine, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import sessionmaker

from orderflow import config
from orderflow.adapters import orm

logger = logging.getLogger(__name__)

# Tables logiques et leur clé de partition
ORDERS = "orders"
INVENTORY = "inventory"

KEYS = {
    ORDERS: "order_id",
    INVENTORY: "product_id",
}


class ConditionFailed(Exception):
    """Levée quand le prédicat d'une écriture conditionnelle est faux."""
    pass


# --- Prédicats ---


@dataclass(frozen=True)
class KeyNotExists:
    """Aucun record n'existe encore pour cette clé (put uniquement)."""


@dataclass(frozen=True)
class AtLeast:
    field: str
    value: Any


@dataclass(frozen=True)
class Equals:
    field: str
    value: Any


Condition = Union[KeyNotExists, AtLeast, Equals]


@dataclass(frozen=True)
class Decrement:
    """Modification atomique `field = field - amount`."""

    amount: int


class AbstractStore(abc.ABC):
    """
    Interface abstraite du store conditionnel.

    Un update sur un record absent lève ConditionFailed, qu'un
    prédicat soit fourni ou non : le store ne crée jamais de record
    par effet de bord d'un update.
    """

    @abc.abstractmethod
    def get(self, table: str, key: Mapping[str, Any]) -> Optional[dict[str, Any]]:
        raise NotImplementedError

    @abc.abstractmethod
    def put(
        self,
        table: str,
        item: Mapping[str, Any],
        condition: Optional[KeyNotExists] = None,
    ) -> None:
        raise NotImplementedError

    @abc.abstractmethod
    def update(
        self,
        table: str,
        key: Mapping[str, Any],
        changes: Mapping[str, Any],
        condition: Optional[Condition] = None,
    ) -> None:
        raise NotImplementedError


# --- Implémentation SQLAlchemy ---


def default_session_factory() -> sessionmaker:
    engine = create_engine(config.get_database_uri(), isolation_level="SERIALIZABLE")
    orm.metadata.create_all(engine)
    return sessionmaker(bind=engine)


class SqlAlchemyStore(AbstractStore):
    """
    Store conditionnel sur une base relationnelle.

    - put conditionnel : INSERT, la contrainte de clé primaire garantit
      l'unicité (IntegrityError -> ConditionFailed)
    - update conditionnel : UPDATE ... WHERE clé AND prédicat ;
      zéro ligne modifiée -> ConditionFailed
    """

    TABLES = {
        ORDERS: orm.orders,
        INVENTORY: orm.inventory,
    }

    def __init__(self, session_factory: sessionmaker | None = None):
        self.session_factory = session_factory or default_session_factory()

    def _table(self, table: str):
        return self.TABLES[table]

    def _key_clause(self, table: str, key: Mapping[str, Any]):
        tbl = self._table(table)
        key_name = KEYS[table]
        return tbl.c[key_name] == key[key_name]

    def get(self, table, key):
        stmt = select(self._table(table)).where(self._key_clause(table, key))
        with self.session_factory() as session:
            row = session.execute(stmt).first()
        return dict(row._mapping) if row else None

    def put(self, table, item, condition=None):
        tbl = self._table(table)
        key_name = KEYS[table]
        with self.session_factory() as session:
            if condition is None:
                # put inconditionnel : remplace le record existant
                session.execute(tbl.delete().where(tbl.c[key_name] == item[key_name]))
            try:
                session.execute(tbl.insert().values(**item))
                session.commit()
            except IntegrityError as e:
                session.rollback()
                raise ConditionFailed(
                    f"{table}: un record existe déjà pour {key_name}={item[key_name]}"
                ) from e

    def update(self, table, key, changes, condition=None):
        tbl = self._table(table)
        values = {
            name: (tbl.c[name] - value.amount if isinstance(value, Decrement) else value)
            for name, value in changes.items()
        }
        clauses = [self._key_clause(table, key)]
        if isinstance(condition, AtLeast):
            clauses.append(tbl.c[condition.field] >= condition.value)
        elif isinstance(condition, Equals):
            clauses.append(tbl.c[condition.field] == condition.value)
        elif condition is not None:
            raise ValueError(f"Prédicat non supporté pour update : {condition!r}")

        stmt = update(tbl).where(and_(*clauses)).values(**values)
        with self.session_factory() as session:
            result = session.execute(stmt)
            if result.rowcount == 0:
                session.rollback()
                raise ConditionFailed(f"{table}: condition non satisfaite pour {dict(key)}")
            session.commit()


# --- Implémentation DynamoDB ---

# Noms d'attributs des tables provisionnées (et de l'inventaire seedé) :
# camelCase, comme les clés du message OrderCreated.
ATTRIBUTE_NAMES = {
    "order_id": "orderId",
    "customer_id": "customerId",
    "product_id": "productId",
    "total_amount": "totalAmount",
    "created_at": "createdAt",
    "updated_at": "updatedAt",
}
FIELD_NAMES = {attribute: name for name, attribute in ATTRIBUTE_NAMES.items()}


def to_attribute(name: str) -> str:
    return ATTRIBUTE_NAMES.get(name, name)


class DynamoDBStore(AbstractStore):
    """
    Store conditionnel sur DynamoDB (client boto3 bas niveau).

    Les prédicats sont traduits en ConditionExpression, évaluée
    atomiquement par DynamoDB. ConditionalCheckFailedException
    devient ConditionFailed ; les autres ClientError remontent.

    Les champs des records (order_id, ...) sont renommés en attributs
    camelCase (orderId, ...) à l'entrée et à la sortie de DynamoDB.
    """

    def __init__(self, client, table_names: Mapping[str, str] | None = None):
        self.client = client
        self.table_names = dict(table_names or {
            ORDERS: config.get_orders_table(),
            INVENTORY: config.get_inventory_table(),
        })
        self._serializer = TypeSerializer()
        self._deserializer = TypeDeserializer()

    def _to_dynamo(self, data):
        """DynamoDB n'accepte pas les float : conversion récursive en Decimal."""
        if isinstance(data, dict):
            return {k: self._to_dynamo(v) for k, v in data.items()}
        if isinstance(data, list):
            return [self._to_dynamo(v) for v in data]
        if isinstance(data, bool):
            return data
        if isinstance(data, (int, float)):
            return Decimal(str(data))
        return data

    def _from_dynamo(self, value):
        """Convertit les Decimal renvoyés par DynamoDB en types Python simples."""
        if isinstance(value, dict):
            return {k: self._from_dynamo(v) for k, v in value.items()}
        if isinstance(value, list):
            return [self._from_dynamo(v) for v in value]
        if isinstance(value, Decimal):
            return int(value) if value % 1 == 0 else float(value)
        return value

    def _serialize(self, item: Mapping[str, Any]) -> dict[str, Any]:
        return {k: self._serializer.serialize(v) for k, v in self._to_dynamo(dict(item)).items()}

    def _serialize_record(self, record: Mapping[str, Any]) -> dict[str, Any]:
        return self._serialize({to_attribute(k): v for k, v in record.items()})

    def _key(self, table: str, key: Mapping[str, Any]) -> dict[str, Any]:
        key_name = KEYS[table]
        return self._serialize_record({key_name: key[key_name]})

    def get(self, table, key):
        resp = self.client.get_item(
            TableName=self.table_names[table],
            Key=self._key(table, key),
            ConsistentRead=True,
        )
        item = resp.get("Item")
        if not item:
            return None
        return self._from_dynamo({
            FIELD_NAMES.get(k, k): self._deserializer.deserialize(v) for k, v in item.items()
        })

    def put(self, table, item, condition=None):
        kwargs: dict[str, Any] = {
            "TableName": self.table_names[table],
            "Item": self._serialize_record(item),
        }
        if condition is not None:
            kwargs["ConditionExpression"] = "attribute_not_exists(#pk)"
            kwargs["ExpressionAttributeNames"] = {"#pk": to_attribute(KEYS[table])}
        self._conditional(self.client.put_item, **kwargs)

    def update(self, table, key, changes, condition=None):
        names = {"#pk": to_attribute(KEYS[table])}
        values: dict[str, Any] = {}
        assignments = []
        for i, (name, value) in enumerate(changes.items()):
            names[f"#f{i}"] = to_attribute(name)
            if isinstance(value, Decrement):
                assignments.append(f"#f{i} = #f{i} - :v{i}")
                values[f":v{i}"] = value.amount
            else:
                assignments.append(f"#f{i} = :v{i}")
                values[f":v{i}"] = value

        expression = "attribute_exists(#pk)"
        if condition is not None:
            if isinstance(condition, AtLeast):
                operator = ">="
            elif isinstance(condition, Equals):
                operator = "="
            else:
                raise ValueError(f"Prédicat non supporté pour update : {condition!r}")
            names["#c"] = to_attribute(condition.field)
            values[":c"] = condition.value
            expression += f" AND #c {operator} :c"

        self._conditional(
            self.client.update_item,
            TableName=self.table_names[table],
            Key=self._key(table, key),
            UpdateExpression="SET " + ", ".join(assignments),
            ConditionExpression=expression,
            ExpressionAttributeNames=names,
            ExpressionAttributeValues=self._serialize(values),
        )

    @staticmethod
    def _conditional(call, **kwargs) -> None:
        try:
            call(**kwargs)
        except ClientError as e:
            if e.response.get("Error", {}).get("Code") == "ConditionalCheckFailedException":
                raise ConditionFailed(f"{kwargs['TableName']}: condition non satisfaite") from e
            raise
