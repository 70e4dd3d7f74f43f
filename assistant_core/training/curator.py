"""训练语料的追加与修复。

语料文件每行一个 JSON 对象。写入是只追加的，崩溃时最多留下最后一条不完整记录；
repair() 负责从这类文件（以及夹杂控制字符、缺少分隔符的旧文件）中恢复记录：

1. 读取文件快照并去掉控制字符；
2. 花括号平衡扫描切分候选记录，逐条独立解析，解析失败只计数不中断；
3. 按 (keyword 或第一条用户消息, response) 稳定去重，保留第一次出现的记录；
4. 写入临时文件，补上修复期间新追加的内容后原子替换目标文件。

修复只在最后的补写与替换阶段短暂持有追加锁，不会长时间阻塞 append()。
同一个语料文件在进程内应只由一个 CorpusCurator 管理。
"""

import json
import logging
import os
import threading
import time
from pathlib import Path
from typing import Iterable, List, NamedTuple, Tuple
from uuid import uuid4

from assistant_core.config.settings import settings
from assistant_core.domain.exceptions import CorpusCorruption, StoreError
from assistant_core.domain.models import TrainingExample
from assistant_core.infrastructure.logging.logger import log_event
from assistant_core.training.scanner import scan_records, strip_control_chars


class RepairResult(NamedTuple):
    examples: List[TrainingExample]
    dropped: int


class CorpusCurator:
    def __init__(self, corpus_path: str | Path | None = None):
        self._path = Path(corpus_path or settings.corpus_path)
        self._append_lock = threading.Lock()
        self._repair_lock = threading.Lock()

    @property
    def path(self) -> Path:
        return self._path

    def append(self, example: TrainingExample) -> None:
        self.append_many([example])

    def append_many(self, examples: Iterable[TrainingExample]) -> int:
        lines = [json.dumps(e.to_record(), ensure_ascii=False) + "\n" for e in examples]
        if not lines:
            return 0
        data = "".join(lines).encode("utf-8")
        with self._append_lock:
            try:
                self._path.parent.mkdir(parents=True, exist_ok=True)
                with self._path.open("ab") as f:
                    f.write(data)
                    f.flush()
                    os.fsync(f.fileno())
            except OSError as e:
                raise StoreError(code="CORPUS_WRITE_ERROR", message=str(e))
        return len(lines)

    def repair(
        self,
        corpus_path: str | Path | None = None,
        output_path: str | Path | None = None,
    ) -> RepairResult:
        """修复语料文件，返回 (去重后的样本, 丢弃的损坏记录数)。

        output_path 为空时原地替换语料文件。
        """

        source = Path(corpus_path) if corpus_path else self._path
        target = Path(output_path) if output_path else source
        start_time = time.time()
        with self._repair_lock:
            snapshot = self._snapshot(source)
            examples, dropped, duplicates = self.reconstruct(snapshot)
            self._write_clean(source, target, examples, len(snapshot))
        log_event(
            logging.INFO,
            "Repaired training corpus",
            {"source": str(source), "target": str(target)},
            kept=len(examples),
            dropped=dropped,
            duplicates=duplicates,
            elapsed_seconds=round(time.time() - start_time, 2),
        )
        return RepairResult(examples=examples, dropped=dropped)

    @staticmethod
    def reconstruct(raw: bytes) -> Tuple[List[TrainingExample], int, int]:
        """从原始字节恢复样本，返回 (样本, 丢弃数, 重复数)。"""

        text = strip_control_chars(raw.decode("utf-8", errors="replace"))
        scan = scan_records(text)
        dropped = 1 if scan.incomplete_tail else 0
        if scan.incomplete_tail:
            log_event(logging.WARNING, "Dropped incomplete trailing record", {})
        examples: List[TrainingExample] = []
        seen = set()
        duplicates = 0
        for index, candidate in enumerate(scan.records):
            try:
                example = _parse_candidate(candidate)
            except CorpusCorruption as e:
                dropped += 1
                log_event(logging.WARNING, "Dropped malformed corpus record", {}, index=index, error=e.message)
                continue
            key = example.dedup_key()
            if key in seen:
                duplicates += 1
                continue
            seen.add(key)
            examples.append(example)
        return examples, dropped, duplicates

    def _snapshot(self, source: Path) -> bytes:
        """读取语料快照。

        文件大小在追加锁内读取，保证快照终点落在记录边界上；读内容时不持锁。
        """

        try:
            with self._append_lock:
                size = source.stat().st_size
            with source.open("rb") as f:
                return f.read(size)
        except FileNotFoundError:
            raise StoreError(code="CORPUS_NOT_FOUND", message=str(source), http_status=404)
        except OSError as e:
            raise StoreError(code="STORE_READ_ERROR", message=str(e))

    def _write_clean(self, source: Path, target: Path, examples: List[TrainingExample], snapshot_len: int) -> None:
        target.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = target.parent / f".{target.name}.{uuid4().hex}.tmp"
        body = "".join(json.dumps(e.to_record(), ensure_ascii=False) + "\n" for e in examples)
        try:
            _write_synced(tmp_path, body.encode("utf-8"), "wb")
            if _same_file(source, target):
                # 补写修复期间追加的记录，再原子替换
                with self._append_lock:
                    _write_synced(tmp_path, self._tail_since(source, snapshot_len), "ab")
                    os.replace(tmp_path, target)
            else:
                os.replace(tmp_path, target)
        except OSError as e:
            tmp_path.unlink(missing_ok=True)
            raise StoreError(code="CORPUS_WRITE_ERROR", message=str(e))

    @staticmethod
    def _tail_since(source: Path, offset: int) -> bytes:
        with source.open("rb") as f:
            f.seek(offset)
            return f.read()


def _parse_candidate(candidate: str) -> TrainingExample:
    try:
        data = json.loads(candidate)
    except ValueError as e:
        raise CorpusCorruption(code="CORPUS_RECORD_INVALID_JSON", message=str(e))
    try:
        return TrainingExample.from_record(data)
    except ValueError as e:
        raise CorpusCorruption(code="CORPUS_RECORD_INVALID_SHAPE", message=str(e))


def _same_file(a: Path, b: Path) -> bool:
    return a.resolve() == b.resolve()


def _write_synced(path: Path, data: bytes, mode: str) -> None:
    with path.open(mode) as f:
        f.write(data)
        f.flush()
        os.fsync(f.fileno())
