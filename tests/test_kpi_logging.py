import json
import logging

import numpy as np

from smart_slam_common.kpi_logging import KPILogger


class TestKPILogger:
    def test_writes_json_lines(self, tmp_path):
        path = tmp_path / "kpi.jsonl"
        with KPILogger(log_path=str(path), extra_fields={"seed": 3}, emit_to_logger=False) as kpi:
            kpi.scenario(10, 8, 80, extrinsics=1)
            kpi.optimization_end(2, 0.01, updated_keys=11, error=np.float64(1.5), lambda_=1e-3)
        events = [json.loads(line) for line in path.read_text().splitlines()]
        assert [e["event"] for e in events] == ["scenario", "optimization_end"]
        assert events[0]["observations"] == 80
        assert events[1]["lambda"] == 1e-3
        assert "max_step" not in events[1]
        assert all(e["seed"] == 3 for e in events)

    def test_disabled_emits_nothing(self, tmp_path, caplog):
        path = tmp_path / "kpi.jsonl"
        kpi = KPILogger(enabled=False, log_path=str(path))
        with caplog.at_level(logging.INFO, logger="smart_slam.kpi"):
            kpi.linearization(1, 4, 0, 0.1)
        kpi.close()
        assert path.read_text() == ""
        assert not caplog.records

    def test_emits_to_logger(self, caplog):
        kpi = KPILogger()
        with caplog.at_level(logging.INFO, logger="smart_slam.kpi"):
            kpi.optimization_start(1, 5, 3)
        assert any("optimization_start" in r.getMessage() for r in caplog.records)
