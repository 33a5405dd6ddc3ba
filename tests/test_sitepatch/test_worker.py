from __future__ import annotations

import dataclasses
import threading

import pytest

from sitepatch.errors import OracleHTTPError
from sitepatch.model.job import JobPayload, JobStatus
from sitepatch.oracle.client import StubOracle
from sitepatch.worker import Worker

OPS_ANSWER = {
    "ops": [{"op": "replace_text", "selector": ".quote", "text": "Best coffee in town"}],
    "notes": "warmer copy",
}


def _failure_lines(job, model):
    return [line for line in job.logs if line.startswith(f"model {model} failed")]


@pytest.fixture
def make_worker(jobs, config):
    def factory(oracle, **overrides):
        cfg = dataclasses.replace(config, **overrides) if overrides else config
        return Worker(jobs, oracle, cfg)

    return factory


class TestFallbackChain:
    def test_first_success_wins_after_failures(self, jobs, payload, make_worker):
        stub = StubOracle(
            {
                "A": OracleHTTPError("HTTP 500: upstream", status_code=500, model="A"),
                "B": {"unexpected": "shape"},
                "C": OPS_ANSWER,
            }
        )
        job = jobs.create(payload)
        finished = make_worker(stub).process(job)

        assert finished.status is JobStatus.DONE
        assert stub.models_called == ["A", "B", "C"]
        assert len(_failure_lines(finished, "A")) == 1
        assert len(_failure_lines(finished, "B")) == 1
        assert _failure_lines(finished, "C") == []
        assert finished.error is None
        assert finished.result["model"] == "C"
        assert finished.result["mode"] == "ops"
        assert finished.result["changed"] == 1
        assert "Best coffee in town" in finished.result["files"]["index.html"]

    def test_stops_at_first_success(self, jobs, payload, make_worker):
        stub = StubOracle({"A": OPS_ANSWER, "B": OPS_ANSWER})
        finished = make_worker(stub).process(jobs.create(payload))
        assert finished.status is JobStatus.DONE
        assert stub.models_called == ["A"]

    def test_chain_exhausted_ends_in_error(self, jobs, payload, make_worker):
        stub = StubOracle({"A": {"nope": 1}, "B": "text", "C": RuntimeError("socket closed")})
        finished = make_worker(stub).process(jobs.create(payload))
        assert finished.status is JobStatus.ERROR
        assert finished.result is None
        assert finished.error.startswith("model C failed")
        assert "socket closed" in finished.error

    def test_timeout_advances_chain(self, jobs, payload, make_worker):
        gate = threading.Event()

        def slow(request):
            gate.wait(5)
            return OPS_ANSWER

        stub = StubOracle({"A": slow, "B": OPS_ANSWER})
        try:
            finished = make_worker(stub, oracle_timeout=0.05).process(jobs.create(payload))
        finally:
            gate.set()
        assert finished.status is JobStatus.DONE
        assert finished.result["model"] == "B"
        (line,) = _failure_lines(finished, "A")
        assert "no answer within" in line

    def test_abandoned_calls_share_a_bounded_pool(self, jobs, payload, config):
        gate = threading.Event()

        def stuck(request):
            gate.wait(5)
            return OPS_ANSWER

        stub = StubOracle({"A": stuck, "B": stuck, "C": stuck})
        cfg = dataclasses.replace(config, oracle_timeout=0.05)
        worker = Worker(jobs, stub, cfg, name="bounded")
        try:
            for _ in range(3):
                assert worker.process(jobs.create(payload)).status is JobStatus.ERROR
            pool_threads = [t for t in threading.enumerate() if t.name.startswith("bounded-oracle")]
            assert 1 <= len(pool_threads) <= 3
        finally:
            gate.set()
            worker.close()


class TestPostProcessing:
    def test_patched_files_keep_unrelated_entries(self, jobs, payload, make_worker):
        extra = dataclasses.replace(payload, files={**payload.files, "assets/app.js": "x()"})
        finished = make_worker(StubOracle({"A": OPS_ANSWER})).process(jobs.create(extra))
        files = finished.result["files"]
        assert files["assets/app.js"] == "x()"
        assert files["styles/style.css"] == payload.files["styles/style.css"]
        assert finished.result["targetRoot"] == '[data-section="testimonials"]'
        assert finished.result["applied"][0]["op"] == "replace_text"

    def test_style_ops_update_stylesheet(self, jobs, payload, make_worker):
        answer = {"ops": [{"op": "upsert_style", "selector": ".quote", "cssSelector": ".quote", "styleRules": "font-style: italic"}]}
        finished = make_worker(StubOracle({"A": answer})).process(jobs.create(payload))
        assert finished.result["files"]["styles/style.css"] == ".quote { color: red; font-style: italic }"

    def test_model_target_root_overrides_guess(self, jobs, payload, make_worker):
        answer = {"targetRoot": '[data-section="hero"]', "ops": [{"op": "replace_text", "selector": "h1, .quote", "text": "Z"}]}
        finished = make_worker(StubOracle({"A": answer})).process(jobs.create(payload))
        html = finished.result["files"]["index.html"]
        assert "<h1>Z</h1>" in html
        assert "Great coffee" in html
        assert finished.result["changed"] == 1

    def test_protected_nav_survives(self, jobs, payload, make_worker):
        answer = {"targetRoot": "body", "ops": [{"op": "set_attr", "selector": "a", "attr": "href", "value": "/x"}]}
        finished = make_worker(StubOracle({"A": answer})).process(jobs.create(payload))
        assert '<a href="/">Home</a>' in finished.result["files"]["index.html"]
        assert finished.result["changed"] == 0

    def test_max_ops_comes_from_config(self, jobs, make_worker):
        html = "<main>" + "".join(f"<p>{i}</p>" for i in range(10)) + "</main>"
        payload = JobPayload(prompt="x", files={"index.html": html})
        answer = {"ops": [{"op": "add_class", "selector": "p", "classes": "k"}]}
        finished = make_worker(StubOracle({"A": answer}), max_ops=4).process(jobs.create(payload))
        assert finished.result["changed"] == 4

    def test_full_site_preset(self, jobs, make_worker):
        files = {"index.html": "<h1>Bakery</h1>", "styles/style.css": "h1{}"}
        stub = StubOracle({"A": {"index.html": "<p>ops?</p>", "extra": 1}, "B": {"files": files}})
        payload = JobPayload(prompt="A bakery", preset="new")
        finished = make_worker(stub).process(jobs.create(payload))
        assert finished.status is JobStatus.DONE
        assert finished.result == {"files": files, "model": "B", "mode": "site"}
        assert _failure_lines(finished, "A")

    def test_ops_answer_rejected_for_full_site(self, jobs, make_worker):
        stub = StubOracle({"A": OPS_ANSWER, "B": {"files": {"index.html": "<p>x</p>"}}})
        finished = make_worker(stub).process(jobs.create(JobPayload(prompt="x", preset="new")))
        assert finished.result["model"] == "B"

    def test_unparseable_document_fails_immediately(self, jobs, make_worker):
        payload = JobPayload(prompt="x", files={"index.html": 123})  # type: ignore[dict-item]
        stub = StubOracle({"A": OPS_ANSWER, "B": OPS_ANSWER})
        finished = make_worker(stub).process(jobs.create(payload))
        assert finished.status is JobStatus.ERROR
        assert stub.models_called == ["A"]
        assert "cannot patch" in finished.error


class TestRunLoop:
    def test_drain_processes_in_fifo_order(self, jobs, make_worker):
        first = jobs.create(JobPayload(prompt="first", files={"index.html": "<p>1</p>"}))
        second = jobs.create(JobPayload(prompt="second", files={"index.html": "<p>2</p>"}))
        stub = StubOracle({"A": {"ops": []}})
        worker = make_worker(stub)

        assert worker.run(drain=True) == 2
        assert [r.prompt for _, r in stub.calls] == ["first", "second"]
        assert jobs.get(first.id).status is JobStatus.DONE
        assert jobs.get(second.id).status is JobStatus.DONE
        assert jobs.queue.size() == 0

    def test_max_jobs_bounds_the_loop(self, jobs, payload, make_worker):
        for _ in range(3):
            jobs.create(payload)
        worker = make_worker(StubOracle({"A": OPS_ANSWER}))
        assert worker.run(max_jobs=2) == 2
        assert jobs.queue.size() == 1

    def test_run_once_on_empty_queue(self, make_worker):
        assert make_worker(StubOracle()).run_once() is False

    def test_missing_record_is_skipped(self, jobs, make_worker):
        jobs.queue.push("job_ghost")
        stub = StubOracle()
        assert make_worker(stub).run_once() is True
        assert stub.calls == []

    def test_stop_event_ends_loop(self, jobs, payload, make_worker):
        jobs.create(payload)
        stop = threading.Event()
        stop.set()
        assert make_worker(StubOracle({"A": OPS_ANSWER})).run(stop_event=stop) == 0
        assert jobs.queue.size() == 1

    def test_empty_queue_sleeps_poll_interval(self, jobs, config, payload):
        naps: list[float] = []

        def sleep(seconds):
            naps.append(seconds)
            jobs.create(payload)

        cfg = dataclasses.replace(config, poll_interval=0.25)
        worker = Worker(jobs, StubOracle({"A": {"ops": []}}), cfg, sleep=sleep)
        assert worker.run(max_jobs=1) == 1
        assert naps == [0.25]

    def test_every_job_ends_terminal(self, jobs, make_worker):
        ok = jobs.create(JobPayload(prompt="a", files={"index.html": "<p>x</p>"}))
        bad = jobs.create(JobPayload(prompt="b", preset="new"))
        make_worker(StubOracle({"A": {"ops": []}})).run(drain=True)
        assert jobs.get(ok.id).status is JobStatus.DONE
        assert jobs.get(bad.id).status is JobStatus.ERROR
