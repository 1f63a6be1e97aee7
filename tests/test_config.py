import logging

import pytest
from pydantic import ValidationError

from fanout.config import ConfigError, load_dependencies
from fanout.models import Dependency


def _write(tmp_path, text):
    p = tmp_path / "dependencies.yaml"
    p.write_text(text, encoding="utf-8")
    return p


def test_loads_dependencies_in_order(tmp_path):
    p = _write(
        tmp_path,
        """
dependencies:
  - method: GET
    path: http://svc-a/ping
  - method: POST
    path: http://svc-b/orders
    host: orders.local
""",
    )

    deps = load_dependencies(p)

    assert deps == [
        Dependency(method="GET", path="http://svc-a/ping", host=""),
        Dependency(method="POST", path="http://svc-b/orders", host="orders.local"),
    ]


def test_missing_file_yields_empty_list(tmp_path, caplog):
    with caplog.at_level(logging.WARNING, logger="fanout.config"):
        deps = load_dependencies(tmp_path / "nope.yaml")
    assert deps == []
    assert "Could not read config file" in caplog.text


@pytest.mark.parametrize("text", ["", "dependencies:\n", "dependencies: []\n"])
def test_empty_documents_yield_empty_list(tmp_path, text):
    assert load_dependencies(_write(tmp_path, text)) == []


def test_null_host_is_empty(tmp_path):
    deps = load_dependencies(_write(tmp_path, "dependencies:\n  - method: GET\n    path: http://a/\n    host: ~\n"))
    assert deps[0].host == ""


@pytest.mark.parametrize(
    "text",
    [
        "dependencies: [unclosed\n",
        "dependencies: not-a-list\n",
        "- just\n- a list\n",
        "dependencies:\n  - method: [GET]\n    path: http://a/\n",
    ],
)
def test_malformed_content_is_fatal(tmp_path, text):
    with pytest.raises(ConfigError):
        load_dependencies(_write(tmp_path, text))


def test_dependency_is_immutable():
    dep = Dependency(method="GET", path="http://a/")
    with pytest.raises(ValidationError):
        dep.method = "POST"
