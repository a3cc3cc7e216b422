import json

import pytest
import yaml
from click.testing import CliRunner

from couchkit.cli.main import cli

pytestmark = pytest.mark.unit

TOPOLOGY = {
    "clusters": {
        "eu": {"url": "https://eu.example.com", "pushTo": ["us"], "exclude": ["#archived"]},
        "us": {"url": "https://us.example.com", "basicAuth": "dTpw"},
        "ap": {"url": "https://ap.example.com", "exclude": ["logs-*"]},
    }
}


@pytest.fixture
def topology_file(tmp_path):
    path = tmp_path / "topology.yaml"
    path.write_text(yaml.safe_dump(TOPOLOGY))
    return str(path)


def test_edges_command(topology_file):
    result = CliRunner().invoke(
        cli, ["edges", topology_file, "--cluster", "eu", "--database", "logs-2024", "--user", "ops"]
    )

    assert result.exit_code == 0, result.output
    body = json.loads(result.output)
    assert body["exists"] is True
    assert body["replicated"] is True
    assert list(body["edges"]) == ["logs-2024.to.us"]
    edge = body["edges"]["logs-2024.to.us"]
    assert edge["source"] == "https://eu.example.com/logs-2024"
    assert edge["target"] == {
        "url": "https://us.example.com/logs-2024",
        "headers": {"Authorization": "Basic dTpw"},
    }
    assert edge["owner"] == "ops"
    assert edge["create_target"] is True


def test_edges_for_excluded_database(topology_file):
    result = CliRunner().invoke(
        cli,
        ["edges", topology_file, "--cluster", "eu", "--database", "logs-2019", "--tag", "#archived"],
    )

    assert result.exit_code == 0, result.output
    assert json.loads(result.output) == {"edges": {}, "exists": False, "replicated": False}


def test_edges_requires_cluster(topology_file):
    result = CliRunner().invoke(cli, ["edges", topology_file, "--database", "x"])
    assert result.exit_code != 0
    assert "--cluster" in result.output


def test_serve_help():
    result = CliRunner().invoke(cli, ["serve", "--help"])
    assert result.exit_code == 0
    assert "--no-api" in result.output
