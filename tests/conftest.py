"""
QR RBAC Backend - Test Configuration and Fixtures
"""
import os
from datetime import datetime, timezone
from typing import AsyncGenerator, Callable

import pytest
from bson import ObjectId
from httpx import AsyncClient, ASGITransport
from mongomock_motor import AsyncMongoMockClient

# Set testing environment before the app reads its config
os.environ['SECRET_KEY'] = 'test-secret-key-for-testing-only'
os.environ['FRONTEND_URL'] = 'http://frontend.test'

from api.main import app
from core.database import ensure_indexes, get_database
from core.security import create_access_token


@pytest.fixture
async def db():
    """Fresh in-memory MongoDB database with production indexes"""
    client = AsyncMongoMockClient()
    database = client['qr_rbac_test']
    await ensure_indexes(database)
    yield database


@pytest.fixture
async def client(db) -> AsyncGenerator[AsyncClient, None]:
    """Test client with the database dependency pointed at the mock"""
    app.dependency_overrides[get_database] = lambda: db

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url='http://test') as ac:
        yield ac

    app.dependency_overrides.clear()


async def _insert_user(db, email: str, name: str, role: str) -> dict:
    user = {
        'email': email,
        'name': name,
        'role': role,
        'hashed_password': 'not-used-in-token-tests',
        'created_at': datetime.now(timezone.utc),
    }
    result = await db['users'].insert_one(user)
    user['_id'] = result.inserted_id
    return user


def _auth_headers(user: dict) -> dict:
    token = create_access_token({'sub': user['email'], 'role': user['role']})
    return {'Authorization': f'Bearer {token}'}


@pytest.fixture
async def admin_user(db) -> dict:
    return await _insert_user(db, 'admin@example.com', 'Admin', 'admin')


@pytest.fixture
async def regular_user(db) -> dict:
    return await _insert_user(db, 'alice@example.com', 'Alice', 'user')


@pytest.fixture
async def other_user(db) -> dict:
    return await _insert_user(db, 'bob@example.com', 'Bob', 'user')


@pytest.fixture
def admin_headers(admin_user) -> dict:
    return _auth_headers(admin_user)


@pytest.fixture
def user_headers(regular_user) -> dict:
    return _auth_headers(regular_user)


@pytest.fixture
def other_headers(other_user) -> dict:
    return _auth_headers(other_user)


@pytest.fixture
async def category(db) -> dict:
    doc = {'name': 'Marketing', 'color': '#ff0000', 'description': '', 'created_at': datetime.now(timezone.utc)}
    result = await db['categories'].insert_one(doc)
    doc['_id'] = result.inserted_id
    return doc


@pytest.fixture
async def second_category(db) -> dict:
    doc = {'name': 'Events', 'color': '#00ff00', 'description': '', 'created_at': datetime.now(timezone.utc)}
    result = await db['categories'].insert_one(doc)
    doc['_id'] = result.inserted_id
    return doc


@pytest.fixture
def make_qr_code(db, regular_user, category) -> Callable:
    """Factory inserting a QR code record with a chosen code_id"""
    async def _make(
        code_id: str,
        website_url: str = 'https://example.com',
        website_title: str = 'Example',
        is_active: bool = True,
        owner: dict = None,
        category_doc: dict = None,
        **extra,
    ) -> dict:
        now = datetime.now(timezone.utc)
        doc = {
            'code_id': code_id,
            'website_url': website_url,
            'website_title': website_title,
            'assigned_to': (owner or regular_user)['_id'],
            'category_id': (category_doc or category)['_id'],
            'image_url': f'/qrcodes/{code_id}/image',
            'image_file_id': None,
            'is_active': is_active,
            'scan_count': 0,
            'scan_buckets': {},
            'last_scanned': None,
            'created_at': now,
            'updated_at': now,
        }
        doc.update(extra)
        result = await db['qrcodes'].insert_one(doc)
        doc['_id'] = result.inserted_id
        return doc

    return _make


@pytest.fixture
def new_object_id() -> str:
    return str(ObjectId())
