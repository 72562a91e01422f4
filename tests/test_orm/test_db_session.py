"""测试会话上下文管理器与 FastAPI 会话依赖"""

import pytest

from ytree.orm import db_manager, db_session_scope, get_db
from ytree.taxonomy import Collection


class TestDbSessionScope:

    def test_commit_on_exit(self, db):
        with db_session_scope() as session:
            assert session is db_manager.get_session()
            Collection(slug="a", name="A").save()

        assert Collection.query.count() == 1

    def test_rollback_on_exception(self, db):
        with pytest.raises(RuntimeError):
            with db_session_scope():
                Collection(slug="a", name="A").save()
                raise RuntimeError("boom")

        assert Collection.query.count() == 0

    def test_no_auto_commit(self, db):
        with db_session_scope(auto_commit=False):
            Collection(slug="a", name="A").save()

        assert Collection.query.count() == 0

    def test_session_removed_on_exit(self, db):
        with db_session_scope() as session:
            pass
        assert db_manager.get_session() is not session


class TestGetDb:

    def test_yields_scoped_session_and_cleans_up(self, db):
        gen = get_db()
        session = next(gen)
        assert session is db_manager.get_session()

        Collection(slug="a", name="A").save(commit=True)
        gen.close()

        assert db_manager.get_session() is not session
        assert Collection.query.count() == 1

    def test_uncommitted_work_discarded(self, db):
        gen = get_db()
        next(gen)
        Collection(slug="a", name="A").save()
        gen.close()

        assert Collection.query.count() == 0
