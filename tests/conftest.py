"""
Pytest 公共配置和 Fixtures

提供测试所需的公共资源：
- 内存数据库（每个测试独立）
- 集合、模板和各服务实例
- 临时文件
"""

import os
import tempfile

import pytest

import ytree.taxonomy  # noqa: F401  注册模型表
from ytree.config import configure_tree
from ytree.orm import Base, db_manager, get_engine, init_database
from ytree.taxonomy import (
    Collection,
    CollectionOwner,
    ContentService,
    DeletionService,
    NodeService,
    TemplateOwner,
    TemplateService,
    TreeQueryService,
)


# ==================== 基础 Fixtures ====================

@pytest.fixture(scope="session")
def temp_dir():
    """创建临时目录"""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield tmpdir


@pytest.fixture
def temp_file(temp_dir):
    """创建临时文件的工厂函数"""
    created_files = []

    def _create_file(filename: str, content: str = "") -> str:
        filepath = os.path.join(temp_dir, filename)
        if os.path.dirname(filepath):
            os.makedirs(os.path.dirname(filepath), exist_ok=True)
        with open(filepath, "w", encoding="utf-8") as f:
            f.write(content)
        created_files.append(filepath)
        return filepath

    yield _create_file

    for f in created_files:
        if os.path.exists(f):
            os.remove(f)


# ==================== 数据库 Fixtures ====================

@pytest.fixture
def db():
    """内存数据库 + 全部表

    使用 StaticPool 单连接，CoreModel.query 绑定到 scoped_session。
    """
    init_database("sqlite:///:memory:")
    Base.metadata.create_all(get_engine())
    configure_tree()
    session = db_manager.get_session()
    try:
        yield session
    finally:
        db_manager.dispose()
        configure_tree()


@pytest.fixture
def collection(db):
    return Collection(slug="main", name="Main Collection").save(commit=True)


@pytest.fixture
def owner(collection):
    return CollectionOwner(collection.id)


# ==================== 服务 Fixtures ====================

@pytest.fixture
def template_service(db):
    return TemplateService()


@pytest.fixture
def node_service(db, template_service):
    return NodeService(template_service=template_service)


@pytest.fixture
def deletion_service(db, template_service):
    return DeletionService(template_service=template_service)


@pytest.fixture
def content_service(db, template_service):
    return ContentService(template_service=template_service)


@pytest.fixture
def query_service(db):
    return TreeQueryService()


# ==================== 模板场景 ====================

@pytest.fixture
def persona_template(template_service):
    """PersonaStageTemplate: persona > stage-01 / stage-02"""
    return template_service.create_template(
        "persona-stage", "PersonaStageTemplate", template_type="persona_stage"
    )


@pytest.fixture
def persona_tree(persona_template, node_service):
    owner = TemplateOwner(persona_template.id)
    root = node_service.create_node(owner, "persona", "Persona")
    stage_01 = node_service.create_node(owner, "stage-01", "Stage 01", parent_id=root.id)
    stage_02 = node_service.create_node(owner, "stage-02", "Stage 02", parent_id=root.id)
    return {"root": root, "stage_01": stage_01, "stage_02": stage_02}


@pytest.fixture
def collection_pair(db):
    """CollectionA / CollectionB"""
    a = Collection(slug="collection-a", name="CollectionA").save(commit=True)
    b = Collection(slug="collection-b", name="CollectionB").save(commit=True)
    return a, b
