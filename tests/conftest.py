import pytest


@pytest.fixture
def store():
    from sonoscribe.database import MEMORY_URL, build_engine, build_session_factory
    from sonoscribe.template_store import TemplateStore

    engine = build_engine(MEMORY_URL)
    yield TemplateStore(build_session_factory(engine))
    engine.dispose()
