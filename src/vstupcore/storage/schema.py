"""
Database schema definition for the admissions record store.
"""

from __future__ import annotations

from sqlalchemy import Column, Float, ForeignKey, Index, Integer, MetaData, Table, Text

# Using a standard naming convention for database objects
convention = {
    "ix": "ix_%(column_0_label)s",
    "uq": "uq_%(table_name)s_%(column_0_name)s",
    "ck": "ck_%(table_name)s_%(constraint_name)s",
    "fk": "fk_%(table_name)s_%(column_0_name)s_%(referred_table_name)s",
    "pk": "pk_%(table_name)s",
}

metadata = MetaData(naming_convention=convention)

cities_table = Table(
    "cities",
    metadata,
    Column("id", Text, primary_key=True),
    Column("name", Text, nullable=False),
    Column("request_parameter", Text),
)

universities_table = Table(
    "universities",
    metadata,
    Column("id", Text, primary_key=True),
    Column("city_id", Text, ForeignKey("cities.id"), nullable=False, index=True),
    Column("name", Text, nullable=False),
    Column("request_parameter", Text),
)

offers_table = Table(
    "offers",
    metadata,
    Column("id", Text, primary_key=True),
    Column("university_id", Text, ForeignKey("universities.id"), nullable=False, index=True),
    Column("speciality", Text, nullable=False),
    Column("request_parameter", Text),
    Column("program", Text),
    Column("budget_count", Integer, nullable=False, default=0),
)

persons_table = Table(
    "persons",
    metadata,
    Column("id", Text, primary_key=True),
    Column("full_name", Text, nullable=False, unique=True),
)

applications_table = Table(
    "applications",
    metadata,
    Column("id", Text, primary_key=True),
    Column("offer_id", Text, ForeignKey("offers.id"), nullable=False, index=True),
    Column("person_id", Text, ForeignKey("persons.id"), nullable=False, index=True),
    Column("grade", Float, nullable=False, default=0.0),
    Column("state", Text),
    Column("priority", Integer),
    Column("request_parameter", Text),
)

Index("ix_applications_offer_person", applications_table.c.offer_id, applications_table.c.person_id)
