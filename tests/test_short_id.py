import pytest

from geoqueue.extensions import db
from geoqueue.services import short_id
from geoqueue.services.errors import FatalError
from tests.conftest import submit


def test_encode_pads_to_four_characters():
    assert short_id.encode(0) == "0000"
    assert short_id.encode(31) == "000Z"
    assert short_id.encode(32) == "0010"
    assert short_id.encode(32 ** 4 - 1) == "ZZZZ"


def test_normalize_accepts_human_input():
    assert short_id.normalize("a3f7") == "A3F7"
    assert short_id.normalize(" a3-f7 ") == "A3F7"
    assert short_id.normalize("o1l1") == "0111"
    assert short_id.normalize("dbug") == "DBUG"


@pytest.mark.parametrize("code", ["", None, "AB", "ABCDE", "ABCU", "A#C1"])
def test_normalize_rejects_non_codes(code):
    assert short_id.normalize(code) is None


def test_debug_code_is_outside_generated_alphabet():
    assert any(c not in short_id.ALPHABET for c in short_id.DEBUG_SHORT_ID)


def test_generated_codes_use_alphabet(ctx):
    for _ in range(20):
        code = short_id.generate_short_id()
        assert len(code) == short_id.SHORT_ID_LENGTH
        assert all(c in short_id.ALPHABET for c in code)


def test_collision_is_retried(ctx, seed, monkeypatch, caplog):
    job = submit(seed)
    job.short_id = short_id.encode(5)
    db.session.commit()

    values = iter([5, 5, 6])
    monkeypatch.setattr(short_id.secrets, "randbelow", lambda n: next(values))

    assert short_id.generate_short_id(max_attempts=5) == short_id.encode(6)
    assert "Short id collision" in caplog.text


def test_exhausted_attempts_is_fatal(ctx, seed, monkeypatch):
    job = submit(seed)
    job.short_id = short_id.encode(5)
    db.session.commit()

    monkeypatch.setattr(short_id.secrets, "randbelow", lambda n: 5)

    with pytest.raises(FatalError):
        short_id.generate_short_id(max_attempts=3)
