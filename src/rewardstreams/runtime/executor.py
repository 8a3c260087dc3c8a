# src/rewardstreams/runtime/executor.py
from __future__ import annotations

import logging
import threading
from typing import Any, Callable, Dict, List, Optional

from rewardstreams.crypto.sig import verify_tx_sig_against_any_key
from rewardstreams.runtime import tx_types as T
from rewardstreams.runtime.config import StreamsConfig, load_streams_config
from rewardstreams.runtime.domain_apply import World, apply_tx_atomic
from rewardstreams.runtime.engine import RewardStreams
from rewardstreams.runtime.errors import StreamsError
from rewardstreams.runtime.log import log_event
from rewardstreams.runtime.metrics import inc_counter, set_gauge
from rewardstreams.runtime.sqlite_db import SqliteDB, SqliteLedgerStore
from rewardstreams.runtime.state_invariants import ensure_invariants
from rewardstreams.runtime.tx_types import TxEnvelope, compute_tx_id

Json = Dict[str, Any]

log = logging.getLogger("rewardstreams.executor")


class ExecutorError(RuntimeError):
    pass


class StreamsExecutor:
    """Serialises calls into one reward streams world persisted in SQLite.

    Each `submit()` authenticates the envelope, applies it atomically,
    optionally audits the ledger, then writes the new snapshot and the
    receipt in a single write transaction. Any failure along the way leaves
    both memory and disk at the pre-call state.
    """

    def __init__(
        self,
        config: StreamsConfig,
        *,
        db_path: Optional[str] = None,
        clock: Optional[Callable[[], int]] = None,
    ) -> None:
        self.config = config
        self.instance_id = config.instance_id
        self.db_path = str(db_path or config.db_path)
        self._lock = threading.RLock()

        self._db = SqliteDB(path=self.db_path)
        self._store = SqliteLedgerStore(db=self._db)

        self.world = World(
            variant=config.variant,
            epoch_duration=config.epoch_duration,
            epoch_origin=config.epoch_origin,
            custody_address=config.custody_address,
            clock=clock,
            allow_mint=not config.is_prod,
        )

        if self._store.exists():
            st = self._store.read()
            if str(st.get("instance_id") or "") != self.instance_id:
                raise ExecutorError(
                    f"instance_id mismatch: db={st.get('instance_id')!r} config={self.instance_id!r}. Refuse to start."
                )
            self.world.load_json(st.get("world"))
        else:
            self._store.write(self._snapshot())

        self._update_gauges()

    @property
    def engine(self) -> RewardStreams:
        return self.world.engine

    def _snapshot(self) -> Json:
        w = self.world.to_json()
        return {
            "instance_id": self.instance_id,
            "tx_count": w["tx_count"],
            "last_tx_id": w["last_tx_id"],
            "world": w,
        }

    def read_state(self) -> Json:
        with self._lock:
            return self._snapshot()

    def query(self, fn: Callable[[RewardStreams], Any]) -> Any:
        """Run a read against the engine without racing a concurrent submit()."""
        with self._lock:
            return fn(self.engine)

    def get_receipt(self, tx_id: str) -> Optional[Json]:
        return self._store.get_receipt(tx_id)

    def receipts_for(self, signer: str, *, limit: int = 100) -> List[Json]:
        return self._store.receipts_for(signer, limit=limit)

    # ----------------------------
    # Submission
    # ----------------------------

    def _authenticate(self, env: TxEnvelope) -> None:
        if not env.signer:
            raise StreamsError("invalid_envelope", "missing_signer", {})
        if env.nonce <= 0:
            raise StreamsError("bad_nonce", "nonce_must_be_positive", {"nonce": env.nonce})
        if self.config.allow_unsigned_txs:
            return

        keys = self.world.identity.keys_of(env.signer)
        if not keys and env.tx_type == T.KEY_REGISTER:
            # First key is self-certifying: the envelope must be signed by it.
            keys = [str(env.payload.get("pubkey") or "")]

        ok, info = verify_tx_sig_against_any_key(
            keys=keys,
            instance_id=self.instance_id,
            tx_type=env.tx_type,
            signer=env.signer,
            nonce=env.nonce,
            payload=env.payload,
            sig=env.sig,
        )
        if not ok:
            raise StreamsError("bad_signature", str(info.get("reason") or "invalid_signature"), {"signer": env.signer})

    def submit(self, env: Any) -> Json:
        """Apply one envelope. Returns the receipt; raises StreamsError on rejection."""
        try:
            e = TxEnvelope.from_json(env)
        except (TypeError, ValueError) as exc:
            raise StreamsError("invalid_envelope", "malformed_envelope", {"error": str(exc)}) from exc

        tx_id = compute_tx_id(self.instance_id, e)

        with self._lock:
            before = self.world.to_json()
            try:
                self._authenticate(e)
                self.world.identity.consume_nonce(e.signer, e.nonce)
                result = apply_tx_atomic(self.world, e)

                if self.config.check_invariants:
                    ensure_invariants(
                        self.world.ledger,
                        assets=self.world.assets,
                        custody_address=self.engine.address,
                        staking=self.world.variant == "staking",
                    )

                self.world.tx_count += 1
                self.world.last_tx_id = tx_id
                receipt: Json = {
                    "ok": True,
                    "tx_id": tx_id,
                    "seq": self.world.tx_count,
                    "tx_type": e.tx_type,
                    "signer": e.signer,
                    "nonce": e.nonce,
                    "ts": self.world.last_ts,
                    "result": result,
                }
                self._store.commit(self._snapshot(), receipt)
            except Exception as exc:
                self.world.load_json(before)
                inc_counter("tx_rejected_total")
                code = exc.code if isinstance(exc, StreamsError) else type(exc).__name__
                log_event(log, "tx_rejected", tx_id=tx_id, tx_type=e.tx_type, signer=e.signer, code=code)
                raise

            inc_counter("tx_applied_total")
            inc_counter(f"tx_{e.tx_type.lower()}_total")
            self._update_gauges()
            log_event(log, "tx_applied", tx_id=tx_id, tx_type=e.tx_type, signer=e.signer, seq=self.world.tx_count)
            return receipt

    def _update_gauges(self) -> None:
        set_gauge("distributions", sum(1 for _ in self.world.ledger.iter_distributions()))
        set_gauge("account_positions", sum(1 for _ in self.world.ledger.iter_accounts()))
        set_gauge("tx_count", self.world.tx_count)


def build_executor(config: Optional[StreamsConfig] = None, *, clock: Optional[Callable[[], int]] = None) -> StreamsExecutor:
    """Build an executor from an explicit config or, if omitted, from env/config file."""
    cfg = config or load_streams_config()
    return StreamsExecutor(cfg, clock=clock)
