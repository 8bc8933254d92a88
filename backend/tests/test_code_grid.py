"""Test code grid generation and refresh."""
import re
import pytest
from quickroll.services.code_grid import (
    CODE_ALPHABET, CodeGridService, Grid, Cell, normalize_code
)

CODE_PATTERN = re.compile(r'^[0-9A-F]{4}$')

def test_generate_default_shape_and_format():
    """Default grid is 7 x 13 with 4-character uppercase hex codes."""
    grid = CodeGridService.generate()
    assert grid.shape == (7, 13)

    codes = [cell.code for _, _, cell in grid.cells()]
    assert all(CODE_PATTERN.match(code) for code in codes)
    assert len(set(codes)) == len(codes)
    assert grid.claimed_count() == 0

def test_generate_rejects_empty_dimensions():
    with pytest.raises(ValueError):
        CodeGridService.generate(0, 5)

def test_draw_code_avoids_taken_codes():
    # Leave exactly one free code in a length-1 namespace
    taken = set(CODE_ALPHABET) - {'A'}
    assert CodeGridService.draw_code(taken, length=1) == 'A'

def test_draw_code_exhausted_namespace():
    with pytest.raises(ValueError):
        CodeGridService.draw_code(set(CODE_ALPHABET), length=1)

def test_find_unclaimed_is_case_insensitive():
    grid = Grid([[Cell('AB12'), Cell('CD34')]])
    assert grid.find_unclaimed('ab12') == (0, 0)
    assert grid.find_unclaimed(' cd34 ') == (0, 1)
    assert grid.find_unclaimed('FFFF') is None
    assert grid.find_unclaimed(None) is None

def test_claim_is_single_use():
    grid = Grid([[Cell('AB12'), Cell('CD34')]])
    grid.claim(0, 0, '07', photo_ref='p.jpg')

    assert grid.find_unclaimed('AB12') is None
    assert grid.rows[0][0].claimed_by == '07'
    with pytest.raises(ValueError):
        grid.claim(0, 0, '08')

def test_regenerate_keeps_claimed_cells():
    grid = CodeGridService.generate(3, 4)
    grid.claim(1, 2, '07')
    claimed = grid.rows[1][2]
    before = grid.codes()

    refreshed = CodeGridService.regenerate_unclaimed(grid)

    assert refreshed.rows[1][2] is claimed
    for i, j, cell in refreshed.cells():
        if (i, j) == (1, 2):
            continue
        assert not cell.claimed
        assert cell.code not in before
    assert len(refreshed.codes()) == 12

def test_payload_redacts_unclaimed_codes():
    grid = Grid([[Cell('AB12'), Cell('CD34')]])
    grid.claim(0, 1, '07')

    hidden = grid.to_payload(reveal_codes=False)
    assert hidden[0][0] == {'code': None, 'used': False, 'claimedBy': None, 'photoRef': None}
    assert hidden[0][1]['code'] == 'CD34'
    assert hidden[0][1]['used'] is True

    full = grid.to_payload()
    assert full[0][0]['code'] == 'AB12'

def test_normalize_code():
    assert normalize_code(' ab1f ') == 'AB1F'
    assert normalize_code(None) == ''
