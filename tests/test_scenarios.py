import json
import random

import pytest

from zonefabric.config import SimulationConfig
from zonefabric.main import main
from zonefabric.policies import SelectionPolicy
from zonefabric.repository import Repository
from zonefabric.scenarios import SCENARIOS, assign_latencies, run_scenario


def _small_config(seed: int = 12345) -> SimulationConfig:
    cfg = SimulationConfig.default()
    cfg.seed = seed
    cfg.workload.zone_count = 4
    cfg.workload.user_count = 3
    cfg.workload.file_count = 8
    cfg.workload.rounds = 5
    cfg.workload.outage_reads = 3
    return cfg


def test_assign_latencies_covers_every_ordered_pair():
    repos = [Repository(f"r{i}", 10) for i in range(3)]
    assign_latencies(repos, random.Random(1), 30, 300)
    for repo in repos:
        others = {other.name for other in repos if other is not repo}
        assert set(repo.latencies) == others
        assert all(30 <= value <= 300 for value in repo.latencies.values())


def test_multi_user_scenario_writes_reads_and_disables_one_zone():
    result = run_scenario("multi_user", _small_config())
    region = result.region
    stats = region.statistics

    assert len(region.zones) == 4
    assert len({zone.name for zone in region.zones}) == 4
    assert sum(1 for zone in region.zones if not zone.is_available()) == 1
    assert stats.total_writes > 0
    assert region.available_objects
    assert stats.total_writes == sum(stats.write_requests_per_zone.values())
    assert stats.total_reads == sum(stats.reads_requester_to_zone.values())
    assert any("switched off" in note for note in result.notes)


def test_multi_user_scenario_is_reproducible_for_a_seed():
    first = run_scenario("multi_user", _small_config(seed=99)).summary()
    second = run_scenario("multi_user", _small_config(seed=99)).summary()
    assert first == second


def test_disable_closest_moves_reads_to_next_nearest_zone():
    result = run_scenario("disable_closest", SimulationConfig.default())
    reads = result.region.statistics.reads_requester_to_zone

    assert result.notes == ["first read served by Budapest", "second read served by Paris"]
    assert reads[("Szeged", "Budapest")] == 1
    assert reads[("Szeged", "Paris")] == 1
    assert not result.region.get_zone("Budapest").is_available()
    assert [obj.object_id for obj in result.region.available_objects] == ["SampleFile"]


def test_least_loaded_picks_zone_with_smallest_free_fraction():
    result = run_scenario("least_loaded", SimulationConfig.default())
    assert result.notes == ["write target Tokyo", "read source Tokyo"]
    assert result.region.statistics.reads_requester_to_zone[("Szeged", "Tokyo")] == 1
    assert result.region.statistics.total_writes == 5


def test_summary_is_json_serialisable():
    summary = run_scenario("disable_closest").summary()
    decoded = json.loads(json.dumps(summary))
    assert decoded["scenario"] == "disable_closest"
    assert decoded["zones"]["Budapest"]["available"] is False
    assert decoded["statistics"]["total_reads"] == 2


def test_unknown_scenario_raises():
    with pytest.raises(KeyError):
        run_scenario("does-not-exist")


def test_cli_lists_scenarios(capsys):
    assert main(["--list"]) == 0
    out = capsys.readouterr().out
    for name in SCENARIOS:
        assert name in out


def test_cli_emits_json(capsys):
    assert main(["--scenario", "disable_closest", "--json", "--log-level", "warning"]) == 0
    payload = json.loads(capsys.readouterr().out)
    assert [entry["scenario"] for entry in payload] == ["disable_closest"]


def test_cli_prints_report(capsys):
    assert main(["--scenario", "least_loaded", "--zone-policy", "nearest"]) == 0
    out = capsys.readouterr().out
    assert "=== Scenario: least_loaded ===" in out
    assert "Simulation Statistics" in out


def test_cli_rejects_invalid_config(tmp_path, capsys):
    path = tmp_path / "bad.json"
    path.write_text(json.dumps({"workload": {"zone_count": 0}}))
    assert main(["--config", str(path)]) == 2
    assert "error:" in capsys.readouterr().err


def test_fixed_scenarios_use_configured_policies():
    cfg = SimulationConfig.default()
    cfg.workload.zone_policy = SelectionPolicy.NEAREST
    cfg.workload.user_policy = SelectionPolicy.NEAREST

    result = run_scenario("least_loaded", cfg)
    assert result.zone_policy is SelectionPolicy.NEAREST
    assert result.notes == ["write target Budapest", "read source Budapest"]
    assert result.region.statistics.reads_requester_to_zone[("Szeged", "Budapest")] == 1


def test_scenario_policies_default_per_scenario():
    cfg = SimulationConfig.default()
    assert run_scenario("least_loaded", cfg).zone_policy is SelectionPolicy.LEAST_LOADED
    multi = run_scenario("multi_user", _small_config())
    assert multi.zone_policy is SelectionPolicy.NEAREST
    assert multi.user_policy is SelectionPolicy.LOWEST_LATENCY


def test_cli_policy_flags_reach_the_scenario(capsys):
    argv = ["--scenario", "least_loaded", "--json", "--zone-policy", "nearest", "--user-policy", "random"]
    assert main(argv) == 0
    (entry,) = json.loads(capsys.readouterr().out)
    assert entry["zone_policy"] == "nearest"
    assert entry["user_policy"] == "random"
    assert entry["notes"][0] == "write target Budapest"


def test_cli_rejects_unknown_log_level(tmp_path, capsys):
    with pytest.raises(SystemExit) as excinfo:
        main(["--log-level", "verbose"])
    assert excinfo.value.code == 2

    path = tmp_path / "noisy.json"
    path.write_text(json.dumps({"observability": {"log_level": "verbose"}}))
    assert main(["--config", str(path)]) == 2
    assert "log_level" in capsys.readouterr().err
