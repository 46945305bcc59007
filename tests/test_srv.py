"""Tests for SRV lookups and the DNS probe."""

from unittest.mock import MagicMock, patch

import dns.resolver
import pytest

from slurm_discovery.discovery.deadline import Deadline
from slurm_discovery.discovery.models import DiscoveredCluster
from slurm_discovery.discovery.resolver import EndpointResolver
from slurm_discovery.discovery.srv import DNSProbe, SrvRecord, local_domain, lookup_srv
from slurm_discovery.exceptions import ProbeError


def _rr(target, port, priority=0, weight=0):
    rr = MagicMock()
    rr.target = target
    rr.port = port
    rr.priority = priority
    rr.weight = weight
    return rr


class TestLocalDomain:
    def test_strips_first_label(self):
        assert local_domain("login1.cluster.example.org") == "cluster.example.org"

    def test_no_dot(self):
        assert local_domain("login1") == ""

    def test_trailing_dot(self):
        assert local_domain("login1.cluster.local.") == "cluster.local"


class TestLookupSrv:
    @patch("slurm_discovery.discovery.srv.dns.resolver.resolve")
    def test_sorted_by_priority_then_weight(self, mock_resolve):
        mock_resolve.return_value = [
            _rr("b.cluster.local.", 6820, priority=20, weight=5),
            _rr("a.cluster.local.", 6821, priority=10, weight=1),
            _rr("c.cluster.local.", 6822, priority=10, weight=9),
        ]
        records = lookup_srv("_slurmrestd._tcp.cluster.local", 2.0)
        assert [r.target for r in records] == ["c.cluster.local", "a.cluster.local", "b.cluster.local"]
        mock_resolve.assert_called_once_with("_slurmrestd._tcp.cluster.local", "SRV", lifetime=2.0)

    @patch("slurm_discovery.discovery.srv.dns.resolver.resolve")
    def test_root_target_means_unavailable(self, mock_resolve):
        mock_resolve.return_value = [_rr(".", 0)]
        with pytest.raises(ProbeError, match="no SRV records"):
            lookup_srv("_slurmrestd._tcp.cluster.local", 2.0)

    @patch("slurm_discovery.discovery.srv.dns.resolver.resolve")
    def test_root_target_skipped_among_real_records(self, mock_resolve):
        mock_resolve.return_value = [_rr(".", 0), _rr("ctld.cluster.local.", 6820, priority=5)]
        records = lookup_srv("_slurmrestd._tcp.cluster.local", 2.0)
        assert records == [SrvRecord("ctld.cluster.local", 6820, priority=5)]

    @patch("slurm_discovery.discovery.srv.dns.resolver.resolve")
    def test_nxdomain_raises_probe_error(self, mock_resolve):
        mock_resolve.side_effect = dns.resolver.NXDOMAIN()
        with pytest.raises(ProbeError, match="SRV lookup failed"):
            lookup_srv("_slurmrestd._tcp.cluster.local", 2.0)

    @patch("slurm_discovery.discovery.srv.dns.resolver.resolve")
    def test_empty_answer_raises(self, mock_resolve):
        mock_resolve.return_value = []
        with pytest.raises(ProbeError, match="no SRV records"):
            lookup_srv("_slurm._tcp.cluster.local", 2.0)


class TestDNSProbe:
    def test_name_and_priority(self):
        probe = DNSProbe(hostname="h")
        assert (probe.name, probe.priority) == ("dns", 7)

    def test_queries_all_names_and_builds_candidates(self):
        queried = []

        def lookup(name, timeout):
            queried.append(name)
            if name.startswith("_slurm._tcp"):
                return [SrvRecord("ctld.cluster.local", 6820, priority=1, weight=2)]
            raise ProbeError("nothing")

        clusters = DNSProbe(hostname="login1.cluster.local", srv_lookup=lookup).discover(Deadline(5))

        assert queried == [
            "_slurmrestd._tcp.cluster.local",
            "_slurm._tcp.cluster.local",
            "_slurmctld._tcp.cluster.local",
        ]
        assert len(clusters) == 1
        cluster = clusters[0]
        assert cluster.name == "dns-cluster-ctld.cluster.local"
        assert cluster.rest_endpoints == ["https://ctld.cluster.local:6820"]
        assert cluster.confidence == 0.8
        assert cluster.metadata["srv_record"] == "_slurm._tcp.cluster.local"
        assert cluster.metadata["priority"] == "1"

    def test_no_domain_skips_lookups(self):
        lookup = MagicMock()
        assert DNSProbe(hostname="login1", srv_lookup=lookup).discover(Deadline(5)) == []
        lookup.assert_not_called()


class TestUnavailableServiceRecord:
    @patch("slurm_discovery.discovery.srv.dns.resolver.resolve")
    def test_resolver_falls_through_to_scontrol(self, mock_resolve):
        mock_resolve.return_value = [_rr(".", 0)]
        scontrol = MagicMock()
        scontrol.discover.return_value = [DiscoveredCluster(
            name="scontrol-ctld", host="ctld", port=6820,
            rest_endpoints=["http://ctld:6820"], confidence=0.9,
        )]

        resolver = EndpointResolver(hostname="a.cluster.local", scontrol_probe=scontrol)
        endpoint = resolver.discover_endpoint()

        assert endpoint.url == "http://ctld:6820"
        assert endpoint.source == "scontrol"
        assert mock_resolve.call_count == 2

    @patch("slurm_discovery.discovery.srv.dns.resolver.resolve")
    def test_dns_probe_emits_no_hostless_candidate(self, mock_resolve):
        mock_resolve.return_value = [_rr(".", 0)]
        assert DNSProbe(hostname="a.cluster.local").discover(Deadline(5)) == []
        assert mock_resolve.call_count == 3
