"""Declarative base shared by all cmsworkflow models."""

from sqlalchemy.orm import declarative_base

Base = declarative_base()
