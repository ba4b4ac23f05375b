"""Tests for single-host and cluster restore modes."""

import dataclasses
import os

import pytest

from pages_restore.errors import ScratchSpaceError, TransportError
from pages_restore.lifecycle import ScratchSpace
from pages_restore.modes import (
    ClusterMode,
    SingleHostMode,
    Transport,
    select_mode,
    write_ssh_config,
)
from pages_restore.ssh import SSHConfig

NODES_COMMAND = "ghe-cluster-nodes --role pages --hostnames"


@pytest.fixture
def scratch(tmp_path):
    return ScratchSpace(local=tmp_path, remote="/tmp/pages-restore-remote")


class TestSelectMode:
    def test_single_host_by_default(self, config):
        assert isinstance(select_mode(config), SingleHostMode)

    def test_cluster(self, cluster_config):
        mode = select_mode(cluster_config)
        assert isinstance(mode, ClusterMode)
        assert mode.finalizes is True
        assert mode.nodes_command == cluster_config.nodes_command


class TestSingleHostMode:
    def test_targets_are_the_host(self, shell):
        assert SingleHostMode().discover_targets(shell) == ["ghe.example.com"]
        assert shell.commands == []

    def test_transport_sends_everything_to_host(self, config, scratch):
        ssh = SSHConfig(host="ghe.example.com")
        transport = SingleHostMode().build_transport(config, ssh, scratch, ["ghe.example.com"])

        assert transport.ssh is ssh
        assert transport.address_for("any-node-id") == "ghe.example.com"
        assert SingleHostMode.finalizes is False


class TestClusterMode:
    def test_discovers_nodes(self, shell):
        shell.responses[NODES_COMMAND] = "pages-1\npages-2\npages-3\npages-1\n"

        assert ClusterMode(NODES_COMMAND).discover_targets(shell) == ["pages-1", "pages-2", "pages-3"]

    def test_discovery_failure(self, shell):
        shell.fail_on[NODES_COMMAND] = 1

        with pytest.raises(TransportError) as excinfo:
            ClusterMode(NODES_COMMAND).discover_targets(shell)
        assert excinfo.value.phase == "discover_targets"

    def test_no_nodes_is_an_error(self, shell):
        with pytest.raises(TransportError, match="no pages storage nodes"):
            ClusterMode(NODES_COMMAND).discover_targets(shell)

    def test_transport_uses_generated_ssh_config(self, cluster_config, scratch):
        ssh = SSHConfig(host="head.example.com")
        transport = ClusterMode(NODES_COMMAND).build_transport(
            cluster_config, ssh, scratch, ["pages-1", "pages-2"]
        )

        assert transport.ssh.config_file == scratch.local / "ssh_config"
        assert transport.ssh.host == "head.example.com"
        assert transport.address_for("pages-2") == "pages-2"
        assert "-F" in transport.ssh.rsync_shell()


class TestWriteSSHConfig:
    def test_proxies_nodes_through_head(self, tmp_path):
        ssh = SSHConfig(host="head.example.com", extra_options=("-o", "Compression=yes"))

        path = write_ssh_config(tmp_path, ssh, ["pages-1", "pages-2"])
        text = path.read_text()

        assert text.startswith("Host pages-1 pages-2\n")
        assert (
            "  ProxyCommand ssh -q -p 122 -l admin -o Compression=yes "
            "head.example.com nc.openbsd %h %p"
        ) in text
        assert "StrictHostKeyChecking no" in text

    def test_includes_identity_file(self, tmp_path):
        ssh = dataclasses.replace(SSHConfig(host="head"), ssh_key="/keys/id")
        assert "-i /keys/id" in write_ssh_config(tmp_path, ssh, ["n1"]).read_text()

    def test_proxy_identity_file_is_expanded(self, tmp_path):
        ssh = dataclasses.replace(SSHConfig(host="head"), ssh_key="~/.ssh/ghe_backup")

        text = write_ssh_config(tmp_path, ssh, ["n1"]).read_text()

        expanded = os.path.expanduser("~/.ssh/ghe_backup")
        assert f"-i {expanded} " in text
        assert expanded in ssh.rsync_shell()

    def test_unwritable_directory_is_scratch_error(self, tmp_path):
        with pytest.raises(ScratchSpaceError):
            write_ssh_config(tmp_path / "missing", SSHConfig(host="head"), ["n1"])


def test_transport_address_defaults_to_node():
    assert Transport(ssh=SSHConfig(host="h")).address_for("n1") == "n1"
