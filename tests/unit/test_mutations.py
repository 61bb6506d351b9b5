"""Tests for firewall mutation plans and read-only views."""

import pytest

from netguard.exceptions import MutationFailureError
from netguard.firewall import mutations, views
from netguard.firewall.mutations import MutationPlan, best_effort, required
from netguard.ruleset import MemoryRulesetTool

WAN = "enp1s0"
LAN = ["enp2s0", "br0"]


@pytest.fixture
def memory_tool() -> MemoryRulesetTool:
    return MemoryRulesetTool()


class TestMutationPlan:
    """Tests for required and best-effort steps."""

    def test_best_effort_failure_is_ignored(self, memory_tool):
        plan = MutationPlan(
            description="cleanup then drop",
            steps=[
                best_effort("iptables", "-D", "INPUT", "-s", "10.0.0.1", "-j", "DROP"),
                required("iptables", "-P", "INPUT", "DROP"),
            ],
        )
        assert plan.run(memory_tool) == 1
        assert memory_tool.ruleset.policy("filter", "INPUT") == "DROP"

    def test_required_failure_stops_the_plan(self, memory_tool):
        plan = MutationPlan(
            description="bad chain",
            steps=[
                required("iptables", "-A", "NOPE", "-j", "ACCEPT"),
                required("iptables", "-P", "INPUT", "DROP"),
            ],
        )
        with pytest.raises(MutationFailureError) as exc_info:
            plan(memory_tool)

        assert exc_info.value.step == ["iptables", "-A", "NOPE", "-j", "ACCEPT"]
        assert memory_tool.ruleset.policy("filter", "INPUT") == "ACCEPT"


class TestToggleFirewall:
    def test_enable_inserts_allow_rules_then_drops(self, memory_tool):
        mutations.toggle_firewall(True, LAN, WAN).run(memory_tool)

        ruleset = memory_tool.ruleset
        rules = ruleset.chain("filter", "INPUT").rules
        assert ruleset.policy("filter", "INPUT") == "DROP"
        assert rules[0] == ["-i", "enp2s0", "-j", "ACCEPT"]
        assert ["-i", "lo", "-j", "ACCEPT"] in rules
        assert ["-i", WAN, "-p", "udp", "--dport", "68", "-j", "ACCEPT"] in rules

    def test_enable_twice_does_not_duplicate(self, memory_tool):
        mutations.toggle_firewall(True, LAN, WAN).run(memory_tool)
        first = [list(r) for r in memory_tool.ruleset.chain("filter", "INPUT").rules]

        mutations.toggle_firewall(True, LAN, WAN).run(memory_tool)

        assert memory_tool.ruleset.chain("filter", "INPUT").rules == first

    def test_disable_accepts(self, memory_tool):
        mutations.toggle_firewall(True, LAN, WAN).run(memory_tool)
        mutations.toggle_firewall(False, LAN, WAN).run(memory_tool)

        status = views.firewall_status(memory_tool.ruleset)
        assert status.enabled is False
        assert status.input_policy == "ACCEPT"


class TestPortForwards:
    def test_add_and_list(self, memory_tool):
        mutations.add_port_forward("tcp", 8080, "192.168.1.10", 80, WAN).run(memory_tool)

        forwards = views.port_forwards(memory_tool.ruleset)
        assert len(forwards) == 1
        assert forwards[0].protocol == "tcp"
        assert forwards[0].external_port == 8080
        assert forwards[0].internal_ip == "192.168.1.10"
        assert forwards[0].internal_port == 80

    def test_both_protocols(self, memory_tool):
        mutations.add_port_forward("both", 53, "192.168.1.2", 53, WAN).run(memory_tool)
        forwards = views.port_forwards(memory_tool.ruleset)
        assert sorted(f.protocol for f in forwards) == ["tcp", "udp"]

    def test_remove(self, memory_tool):
        mutations.add_port_forward("tcp", 8080, "192.168.1.10", 80, WAN).run(memory_tool)
        mutations.remove_port_forward("tcp", 8080, "192.168.1.10", 80, WAN).run(memory_tool)

        assert views.port_forwards(memory_tool.ruleset) == []
        assert memory_tool.ruleset.chain("filter", "FORWARD").rules == []

    def test_remove_missing_is_harmless(self, memory_tool):
        plan = mutations.remove_port_forward("udp", 9999, "192.168.1.10", 9999, WAN)
        assert plan.run(memory_tool) == 0

    def test_invalid_protocol(self):
        with pytest.raises(ValueError):
            mutations.add_port_forward("icmp", 1, "192.168.1.10", 1, WAN)


class TestBlockedIPs:
    def test_block_and_unblock(self, memory_tool):
        mutations.block_ip("203.0.113.7").run(memory_tool)
        assert [b.ip for b in views.blocked_ips(memory_tool.ruleset)] == ["203.0.113.7"]

        mutations.unblock_ip("203.0.113.7").run(memory_tool)
        assert views.blocked_ips(memory_tool.ruleset) == []

    def test_host_mask_is_stripped(self):
        ruleset = MemoryRulesetTool(
            initial="*filter\n:INPUT ACCEPT [0:0]\n-A INPUT -s 10.1.2.3/32 -j DROP\nCOMMIT\n"
        ).ruleset
        assert views.blocked_ips(ruleset)[0].ip == "10.1.2.3"


class TestDmz:
    def test_set_and_clear(self, memory_tool):
        mutations.set_dmz(True, "192.168.1.50", WAN).run(memory_tool)
        dmz = views.dmz_status(memory_tool.ruleset)
        assert dmz.enabled is True
        assert dmz.target_ip == "192.168.1.50"

        mutations.set_dmz(False, None, WAN, current_target="192.168.1.50").run(memory_tool)
        assert views.dmz_status(memory_tool.ruleset).enabled is False

    def test_move_target(self, memory_tool):
        mutations.set_dmz(True, "192.168.1.50", WAN).run(memory_tool)
        mutations.set_dmz(True, "192.168.1.60", WAN, current_target="192.168.1.50").run(memory_tool)

        assert views.dmz_status(memory_tool.ruleset).target_ip == "192.168.1.60"
        assert len(memory_tool.ruleset.chain("nat", "PREROUTING").rules) == 1

    def test_port_forward_is_not_dmz(self, memory_tool):
        mutations.add_port_forward("tcp", 8080, "192.168.1.10", 80, WAN).run(memory_tool)
        assert views.dmz_status(memory_tool.ruleset).enabled is False

    def test_enable_requires_target(self):
        with pytest.raises(ValueError):
            mutations.set_dmz(True, None, WAN)
