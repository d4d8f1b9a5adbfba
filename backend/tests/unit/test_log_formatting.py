import json
import logging

from panthers.obs.logging import InfoSamplingFilter, JSONLogFormatter, current_request_id, log_context


def _record(msg: str = "checkin_saved", level: int = logging.INFO, **extra) -> logging.LogRecord:
	record = logging.makeLogRecord({"name": "panthers.test", "levelno": level, "levelname": logging.getLevelName(level), "msg": msg})
	for key, value in extra.items():
		setattr(record, key, value)
	return record


def test_formatter_includes_bound_context_and_extras():
	with log_context(request_id="req-1", procedure="rpc_save_attendance_batch"):
		line = JSONLogFormatter().format(_record(player_id="p-1"))
	entry = json.loads(line)
	assert entry["event"] == "checkin_saved"
	assert entry["request_id"] == "req-1"
	assert entry["procedure"] == "rpc_save_attendance_batch"
	assert entry["player_id"] == "p-1"


def test_formatter_redacts_health_and_secret_fields():
	entry = json.loads(JSONLogFormatter().format(_record(symptoms="headache", payload={"api_key": "k", "ok": 1})))
	assert entry["symptoms"] == "[redacted]"
	assert entry["payload"] == {"api_key": "[redacted]", "ok": 1}


def test_formatter_clips_long_values():
	entry = json.loads(JSONLogFormatter().format(_record(detail="x" * 300, ids=list(range(20)))))
	assert len(entry["detail"]) == 257
	assert entry["ids"][-1] == "…"
	assert len(entry["ids"]) == 11


def test_context_is_restored_after_block():
	with log_context(request_id="outer"):
		with log_context(request_id="inner"):
			assert current_request_id() == "inner"
		assert current_request_id() == "outer"
	assert current_request_id() == "unknown"


def test_sampling_never_drops_warnings():
	sampler = InfoSamplingFilter(0.0)
	assert sampler.filter(_record(level=logging.WARNING))
	assert not sampler.filter(_record(level=logging.INFO))
