import json
import tempfile
import threading
import time
from pathlib import Path

import pytest

from assistant_core.domain.exceptions import StoreError
from assistant_core.domain.models import TrainingExample
from assistant_core.training.curator import CorpusCurator


def _example(prompt, response, **meta):
    return TrainingExample(history=[{"role": "user", "content": prompt}], response=response, meta=meta)


def _records(path):
    return [json.loads(line) for line in Path(path).read_text(encoding="utf-8").splitlines() if line.strip()]


def test_repair_drops_truncated_record_and_strips_control_chars():
    with tempfile.TemporaryDirectory() as d:
        path = Path(d) / "corpus.jsonl"
        path.write_bytes(
            b'{"keyword": "beton", "response": "ok"}\n'
            b'{"keyword": "devis", "response": "mont\x07ant"}\n'
            b'{"keyword": "casque", "response": "tron'
        )
        examples, dropped = CorpusCurator(path).repair()
        assert dropped == 1
        assert [e.keyword for e in examples] == ["beton", "devis"]
        assert examples[1].response == "montant"
        assert [r["keyword"] for r in _records(path)] == ["beton", "devis"]


def test_repair_counts_unparsable_records_without_aborting():
    with tempfile.TemporaryDirectory() as d:
        path = Path(d) / "corpus.jsonl"
        path.write_text(
            '{"keyword": "a", "response": }\n'
            '{"unrelated": 1}\n'
            '{"keyword": "b", "response": "use {x} and }"}\n',
            encoding="utf-8",
        )
        result = CorpusCurator(path).repair()
        assert result.dropped == 2
        assert len(result.examples) == 1
        assert result.examples[0].response == "use {x} and }"


def test_repair_keeps_first_duplicate():
    with tempfile.TemporaryDirectory() as d:
        path = Path(d) / "corpus.jsonl"
        curator = CorpusCurator(path)
        curator.append_many([
            _example("béton ?", "réponse", seq=1),
            _example("carrelage ?", "autre", seq=2),
            _example("béton ?", "réponse", seq=3),
        ])
        examples, dropped = curator.repair()
        assert dropped == 0
        assert [e.meta["seq"] for e in examples] == [1, 2]
        assert [r["meta"]["seq"] for r in _records(path)] == [1, 2]


def test_repair_accepts_legacy_shapes():
    with tempfile.TemporaryDirectory() as d:
        path = Path(d) / "corpus.json"
        legacy = [
            {"keyword": "béton", "response": "r1"},
            {"message": "salut", "response": "r2"},
            {"input": "route", "output": "r3", "projectType": "tp"},
            {"history": [{"role": "user", "content": "plan"}], "aiResponse": "r4", "planSummary": "wall=1"},
        ]
        path.write_text(json.dumps(legacy, ensure_ascii=False, indent=2), encoding="utf-8")
        examples, dropped = CorpusCurator(path).repair()
        assert dropped == 0
        assert [e.response for e in examples] == ["r1", "r2", "r3", "r4"]
        assert examples[0].first_user_content() == "béton"
        assert examples[2].project_type == "tp"
        assert examples[3].plan_summary == "wall=1"


def test_repair_to_separate_output_leaves_source_untouched():
    with tempfile.TemporaryDirectory() as d:
        source = Path(d) / "corpus.jsonl"
        target = Path(d) / "clean" / "corpus.jsonl"
        raw = b'{"keyword": "a", "response": "x"}{"keyword": "a", "response": "x"}'
        source.write_bytes(raw)
        examples, dropped = CorpusCurator(source).repair(output_path=target)
        assert len(examples) == 1
        assert source.read_bytes() == raw
        assert len(_records(target)) == 1


def test_repair_missing_file():
    with tempfile.TemporaryDirectory() as d:
        with pytest.raises(StoreError) as exc:
            CorpusCurator(Path(d) / "absent.jsonl").repair()
        assert exc.value.code == "CORPUS_NOT_FOUND"


def test_append_during_repair_is_not_lost():
    with tempfile.TemporaryDirectory() as d:
        path = Path(d) / "corpus.jsonl"
        curator = CorpusCurator(path)
        curator.append(_example("ancien", "r0"))
        original = curator.reconstruct

        def reconstruct_then_append(raw):
            result = original(raw)
            curator.append(_example("nouveau", "r1"))
            return result

        curator.reconstruct = reconstruct_then_append
        examples, _ = curator.repair()
        assert [e.response for e in examples] == ["r0"]
        assert [r["response"] for r in _records(path)] == ["r0", "r1"]


def test_concurrent_appends_and_repair():
    with tempfile.TemporaryDirectory() as d:
        path = Path(d) / "corpus.jsonl"
        curator = CorpusCurator(path)
        curator.append(_example("départ", "r-start"))

        def writer(n):
            for i in range(20):
                curator.append(_example(f"w{n}-{i}", f"r{n}-{i}"))

        threads = [threading.Thread(target=writer, args=(n,)) for n in range(3)]
        for t in threads:
            t.start()
        for _ in range(3):
            curator.repair()
        for t in threads:
            t.join()
        responses = {r["response"] for r in _records(path)}
        assert len(responses) == 61
        assert len(_records(path)) == 61


def test_append_writes_one_utf8_line_per_example():
    with tempfile.TemporaryDirectory() as d:
        path = Path(d) / "nested" / "corpus.jsonl"
        curator = CorpusCurator(path)
        curator.append(_example("fenêtre", "réponse"))
        assert curator.append_many([]) == 0
        text = path.read_text(encoding="utf-8")
        assert text.count("\n") == 1
        assert "fenêtre" in text


def test_repair_snapshot_waits_for_in_flight_append():
    with tempfile.TemporaryDirectory() as d:
        path = Path(d) / "corpus.jsonl"
        curator = CorpusCurator(path)
        curator.append(_example("ancien", "r0"))
        line = (json.dumps(_example("nouveau", "r1").to_record(), ensure_ascii=False) + "\n").encode("utf-8")
        half = len(line) // 2
        results = []

        # 模拟一次写到一半的追加：持有追加锁期间只写入前半条记录
        with curator._append_lock:
            with path.open("ab") as f:
                f.write(line[:half])
            repairer = threading.Thread(target=lambda: results.append(curator.repair()))
            repairer.start()
            time.sleep(0.2)
            with path.open("ab") as f:
                f.write(line[half:])
        repairer.join(5)

        examples, dropped = results[0]
        assert dropped == 0
        assert sorted(e.response for e in examples) == ["r0", "r1"]
        assert [r["response"] for r in _records(path)] == ["r0", "r1"]
        assert curator.repair().dropped == 0
