import pytest

from tinylog.cli import main, node_ids


def test_node_ids_first_node():
    assert node_ids(3, 0) == ("node-00", ["node-01", "node-02"])


def test_node_ids_middle_node():
    node_id, peers = node_ids(3, 1)
    assert node_id == "node-01"
    assert peers == ["node-00", "node-02"]


def test_node_ids_peers_exclude_self():
    for index in range(5):
        node_id, peers = node_ids(5, index)
        assert node_id not in peers
        assert len(peers) == 4


@pytest.mark.parametrize("index", [-1, 3, 7])
def test_node_ids_out_of_range(index):
    with pytest.raises(ValueError, match="node index must be in range"):
        node_ids(3, index)


def test_main_rejects_out_of_range_index(capsys):
    assert main(["--node-num", "3", "--node-index", "5"]) == 1
    assert "node index must be in range [0, 3), got 5" in capsys.readouterr().out


def test_main_reads_index_from_environment(monkeypatch, capsys):
    monkeypatch.setenv("NODE_NUM", "2")
    monkeypatch.setenv("NODE_INDEX", "4")
    assert main([]) == 1
    assert "got 4" in capsys.readouterr().out


def test_main_reports_invalid_broker(monkeypatch, capsys):
    monkeypatch.delenv("NODE_NUM", raising=False)
    monkeypatch.delenv("NODE_INDEX", raising=False)
    assert main(["--broker-ip", "tcp://"]) == 1
    assert "Error running node" in capsys.readouterr().out