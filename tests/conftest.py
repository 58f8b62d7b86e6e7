"""Pytest configuration and shared fixtures."""

import shutil
import tempfile
from pathlib import Path

import pytest

from schemashift.config import EngineConfig


USERS_SCHEMA = """
datasource db {
  provider = "sqlite"
  url      = "file:./dev.db"
}

model users {
  id    Int     @id @default(autoincrement())
  email String  @unique
  name  String?
}
"""

BLOG_SCHEMA = """
datasource db {
  provider = "sqlite"
  url      = "file:./dev.db"
}

model User {
  id        Int      @id @default(autoincrement())
  email     String   @unique
  name      String?
  active    Boolean  @default(true)
  createdAt DateTime @default(now())
  posts     Post[]
}

model Post {
  id        Int     @id @default(autoincrement())
  title     String
  status    String  @default("draft")
  views     Int     @default(0)
  author    User    @relation(fields: [authorId], references: [id])
  authorId  Int

  @@index([title, authorId])
}
"""


@pytest.fixture
def temp_dir():
    """Create a temporary directory."""
    temp = tempfile.mkdtemp()
    yield Path(temp)
    shutil.rmtree(temp)


@pytest.fixture
def sqlite_config(temp_dir):
    """Engine config for a SQLite file in a temporary project."""
    return EngineConfig(
        database_url=f"file:{temp_dir / 'dev.db'}",
        migrations_dir=temp_dir / "migrations",
    )


@pytest.fixture
def users_schema():
    """Declaration of a single users model."""
    return USERS_SCHEMA


@pytest.fixture
def blog_schema():
    """Declaration of users with related posts."""
    return BLOG_SCHEMA
