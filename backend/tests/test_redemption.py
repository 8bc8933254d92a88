"""Test code redemption rules and atomicity."""
import threading
import pytest
from quickroll.services.errors import (
    AlreadyMarked, ForcedAbsent, InvalidOrUsedCode, NoActiveSession, PhotoRequired
)
from quickroll.services.redemption import RedemptionEngine
from quickroll.services.session_registry import SessionKey, SessionRegistry

@pytest.fixture
def key():
    return SessionKey('BTech', '5', 'A1')

@pytest.fixture
def registry(key):
    registry = SessionRegistry(rows=7, cols=13)
    registry.start(key, 'roll', 60)
    return registry

@pytest.fixture
def engine(registry):
    return RedemptionEngine(registry)

def first_code(registry, key):
    return registry.status(key).grid.rows[0][0].code

def test_redeem_success(registry, engine, key):
    code = first_code(registry, key)

    result = engine.redeem(key, '7', code.lower(), photo_ref='p.jpg')

    assert result.success
    assert result.identity == '07'
    assert (result.row, result.col) == (0, 0)
    cell = registry.status(key).grid.rows[0][0]
    assert cell.claimed_by == '07'
    assert cell.photo_ref == 'p.jpg'
    assert '07' in registry.status(key).claims

def test_redeem_without_session(engine):
    with pytest.raises(NoActiveSession):
        engine.redeem(SessionKey('BCA', '1', 'B1'), '07', 'AAAA')

def test_code_is_single_use(registry, engine, key):
    code = first_code(registry, key)
    engine.redeem(key, '07', code)

    with pytest.raises(InvalidOrUsedCode):
        engine.redeem(key, '08', code)

def test_identity_claims_once(registry, engine, key):
    grid = registry.status(key).grid
    engine.redeem(key, '07', grid.rows[0][0].code)

    with pytest.raises(AlreadyMarked):
        engine.redeem(key, '7', grid.rows[0][1].code)

def test_unknown_code(engine, key):
    with pytest.raises(InvalidOrUsedCode):
        engine.redeem(key, '07', 'ZZZZ')

def test_photo_required_checked_before_code(key):
    registry = SessionRegistry(photo_verification_required=True)
    registry.start(key, 'roll', 60)
    engine = RedemptionEngine(registry)

    with pytest.raises(PhotoRequired):
        engine.redeem(key, '07', 'ZZZZ')

    result = engine.redeem(key, '07', first_code(registry, key), photo_ref='p.jpg')
    assert result.success

def test_forced_absent_blocks_redemption(registry, engine, key):
    registry.record_violation(key, '07', 'mode_exited')

    with pytest.raises(ForcedAbsent):
        engine.redeem(key, '07', first_code(registry, key))

def test_violation_keeps_existing_claim(registry, engine, key):
    engine.redeem(key, '07', first_code(registry, key))
    registry.record_violation(key, '07')

    stats = registry.end(key)
    assert '07' in stats.present_list
    assert stats.forced_absent == ['07']

def test_old_codes_invalid_after_refresh(registry, engine, key):
    code = first_code(registry, key)
    registry.refresh_codes(key)

    with pytest.raises(InvalidOrUsedCode):
        engine.redeem(key, '07', code)

def test_redeem_after_end(registry, engine, key):
    code = first_code(registry, key)
    registry.end(key)

    with pytest.raises(NoActiveSession):
        engine.redeem(key, '07', code)

def run_concurrently(calls):
    barrier = threading.Barrier(len(calls))
    outcomes = []
    lock = threading.Lock()

    def worker(fn):
        barrier.wait()
        try:
            result = fn()
        except Exception as e:
            result = e
        with lock:
            outcomes.append(result)

    threads = [threading.Thread(target=worker, args=(fn,)) for fn in calls]
    for t in threads:
        t.start()
    for t in threads:
        t.join()
    return outcomes

def test_race_for_same_code(registry, engine, key):
    code = first_code(registry, key)
    calls = [lambda r=roll: engine.redeem(key, str(r), code) for roll in range(1, 21)]

    outcomes = run_concurrently(calls)

    successes = [o for o in outcomes if not isinstance(o, Exception)]
    failures = [o for o in outcomes if isinstance(o, Exception)]
    assert len(successes) == 1
    assert all(isinstance(f, InvalidOrUsedCode) for f in failures)

def test_race_for_same_identity(registry, engine, key):
    codes = [cell.code for _, _, cell in registry.status(key).grid.cells()][:20]
    calls = [lambda c=code: engine.redeem(key, '07', c) for code in codes]

    outcomes = run_concurrently(calls)

    successes = [o for o in outcomes if not isinstance(o, Exception)]
    assert len(successes) == 1
    assert all(isinstance(o, AlreadyMarked) for o in outcomes if isinstance(o, Exception))
    assert registry.status(key).grid.claimed_count() == 1
