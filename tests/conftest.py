import pytest

from tocparser.config import RunConfig
from tocparser.records import clean_records

from run_factory import build_run


@pytest.fixture
def config():
    return RunConfig()


@pytest.fixture
def raw_run():
    return build_run()


@pytest.fixture
def clean_run(raw_run, config):
    return clean_records(raw_run, config)
