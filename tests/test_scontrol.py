"""Tests for the scontrol ping probe and output parser."""

import subprocess
from unittest.mock import MagicMock, patch

import pytest

from slurm_discovery.discovery.deadline import Deadline
from slurm_discovery.discovery.models import ScontrolResult
from slurm_discovery.discovery.scontrol import (
    ScontrolProbe,
    get_controller_hostname,
    parse_ping_output,
    result_to_cluster,
    results_to_clusters,
)
from slurm_discovery.exceptions import ProbeError

TWO_CONTROLLERS = "Slurmctld(primary) at host1 is UP\nSlurmctld(backup) at host2 is DOWN"


class TestParsePingOutput:
    def test_primary_and_backup(self):
        results = parse_ping_output(TWO_CONTROLLERS)
        assert results == [
            ScontrolResult(hostname="host1", role="primary", status="UP"),
            ScontrolResult(hostname="host2", role="backup", status="DOWN"),
        ]

    def test_role_less_line_defaults_to_primary(self):
        assert parse_ping_output("Slurmctld at slurm-controller is UP") == [
            ScontrolResult(hostname="slurm-controller", role="primary", status="UP"),
        ]

    def test_fqdn_hostname(self):
        results = parse_ping_output("Slurmctld(primary) at slurm-controller1.cluster.local is UP")
        assert results[0].hostname == "slurm-controller1.cluster.local"

    def test_normalises_case(self):
        results = parse_ping_output("Slurmctld(Primary) at host1 is up")
        assert results[0].role == "primary"
        assert results[0].status == "UP"

    @pytest.mark.parametrize("output", ["", "   \n   \n   "])
    def test_empty_output(self, output):
        assert parse_ping_output(output) == []

    def test_unparseable_lines_are_skipped_and_logged(self):
        log = MagicMock()
        results = parse_ping_output("garbage line\nSlurmctld(primary) at host1 is UP", log=log)
        assert len(results) == 1
        log.debug.assert_called_once()


class TestResultToCluster:
    def test_primary_up(self):
        cluster = result_to_cluster(ScontrolResult("slurm-controller1", "primary", "UP"), 6820)
        assert cluster.host == "slurm-controller1"
        assert cluster.port == 6820
        assert cluster.confidence == 0.9
        assert cluster.rest_endpoints == ["http://slurm-controller1:6820"]
        assert cluster.detection_methods == ["scontrol-ping"]
        assert cluster.metadata["controller_role"] == "primary"

    def test_backup_up(self):
        cluster = result_to_cluster(ScontrolResult("slurm-controller2", "backup", "UP"), 6820)
        assert cluster.confidence == 0.85

    def test_down_is_dropped(self):
        assert result_to_cluster(ScontrolResult("slurm-controller1", "primary", "DOWN")) is None

    def test_two_controllers_yield_one_cluster(self):
        clusters = results_to_clusters(parse_ping_output(TWO_CONTROLLERS))
        assert len(clusters) == 1
        assert clusters[0].host == "host1"
        assert clusters[0].confidence == 0.9


class TestGetControllerHostname:
    def test_primary_up(self):
        assert get_controller_hostname("Slurmctld(primary) at slurm-controller1 is UP") == ("slurm-controller1", True)

    def test_primary_down_backup_up(self):
        output = "Slurmctld(primary) at host1 is DOWN\nSlurmctld(backup) at host2 is UP"
        assert get_controller_hostname(output) == ("host2", True)

    def test_all_down(self):
        output = "Slurmctld(primary) at host1 is DOWN\nSlurmctld(backup) at host2 is DOWN"
        assert get_controller_hostname(output) == ("", False)

    def test_empty(self):
        assert get_controller_hostname("") == ("", False)


def _completed(stdout="", returncode=0, stderr=""):
    return subprocess.CompletedProcess(args=["scontrol", "ping"], returncode=returncode, stdout=stdout, stderr=stderr)


@pytest.fixture
def probe():
    with patch("slurm_discovery.discovery.scontrol.validate_and_resolve_command", return_value="/usr/bin/scontrol"):
        return ScontrolProbe()


class TestScontrolProbe:
    def test_name_and_priority(self, probe):
        assert probe.name == "scontrol"
        assert probe.priority == 5

    def test_validated_path_is_used(self, probe):
        assert probe.scontrol_path == "/usr/bin/scontrol"

    def test_falls_back_to_raw_path_when_validation_fails(self):
        probe = ScontrolProbe(scontrol_path="/definitely/missing/scontrol")
        assert probe.scontrol_path == "/definitely/missing/scontrol"

    @patch("slurm_discovery.discovery.scontrol.subprocess.run")
    def test_discover_runs_ping(self, mock_run, probe):
        mock_run.return_value = _completed(stdout=TWO_CONTROLLERS)
        clusters = probe.discover(Deadline(5))

        assert [c.host for c in clusters] == ["host1"]
        args, kwargs = mock_run.call_args
        assert args[0] == ["/usr/bin/scontrol", "ping"]
        assert 0 < kwargs["timeout"] <= 5

    @patch("slurm_discovery.discovery.scontrol.subprocess.run")
    def test_empty_output_is_not_an_error(self, mock_run, probe):
        mock_run.return_value = _completed(stdout="  \n")
        assert probe.discover(Deadline(5)) == []

    @patch("slurm_discovery.discovery.scontrol.subprocess.run")
    def test_non_zero_exit_raises(self, mock_run, probe):
        mock_run.return_value = _completed(returncode=1, stderr="slurm_load_ctl_conf error")
        with pytest.raises(ProbeError, match="status 1"):
            probe.discover(Deadline(5))

    @patch("slurm_discovery.discovery.scontrol.subprocess.run")
    def test_missing_binary_raises(self, mock_run, probe):
        mock_run.side_effect = FileNotFoundError("scontrol")
        with pytest.raises(ProbeError):
            probe.discover(Deadline(5))

    @patch("slurm_discovery.discovery.scontrol.subprocess.run")
    def test_timeout_raises(self, mock_run, probe):
        mock_run.side_effect = subprocess.TimeoutExpired(cmd="scontrol", timeout=5)
        with pytest.raises(ProbeError, match="timed out"):
            probe.discover(Deadline(5))

    @patch("slurm_discovery.discovery.scontrol.subprocess.run")
    def test_expired_deadline_skips_execution(self, mock_run, probe):
        deadline = Deadline(5)
        deadline.cancel()
        with pytest.raises(ProbeError):
            probe.discover(deadline)
        mock_run.assert_not_called()


def _fake_scontrol(tmp_path, body):
    script = tmp_path / "scontrol"
    script.write_text(f"#!/bin/sh\n{body}\n")
    script.chmod(0o755)
    return script


class TestScontrolOutputDecoding:
    def test_invalid_utf8_is_replaced(self, tmp_path):
        script = _fake_scontrol(tmp_path, r"printf 'Slurmctld(primary) at h\377st1 is UP\n'")
        probe = ScontrolProbe(scontrol_path=str(script))

        output = probe.run_ping(Deadline(5))

        assert "�" in output
        clusters = probe.discover(Deadline(5))
        assert len(clusters) == 1
        assert clusters[0].host == "h�st1"

    @patch("slurm_discovery.discovery.scontrol.subprocess.run")
    def test_decodes_leniently(self, mock_run, probe):
        mock_run.return_value = _completed(stdout="")
        probe.run_ping(Deadline(5))
        _, kwargs = mock_run.call_args
        assert kwargs["encoding"] == "utf-8"
        assert kwargs["errors"] == "replace"
