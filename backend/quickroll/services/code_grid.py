# backend/quickroll/services/code_grid.py
"""Code grid generation for live attendance sessions."""
import secrets
from dataclasses import dataclass, replace
from typing import Dict, Iterator, List, Optional, Set, Tuple

CODE_ALPHABET = '0123456789ABCDEF'
CODE_LENGTH = 4
DEFAULT_ROWS = 7
DEFAULT_COLS = 13

# Redraw budget per cell before giving up on a crowded namespace
MAX_DRAW_ATTEMPTS = 1000


@dataclass(frozen=True)
class Cell:
    """One single-use code slot in the grid."""
    code: str
    claimed_by: Optional[str] = None
    device_signature: Optional[object] = None
    photo_ref: Optional[str] = None

    @property
    def claimed(self) -> bool:
        return self.claimed_by is not None

    def to_dict(self, reveal_code: bool = True) -> Dict:
        return {
            'code': self.code if (reveal_code or self.claimed) else None,
            'used': self.claimed,
            'claimedBy': self.claimed_by,
            'photoRef': self.photo_ref
        }


class Grid:
    """Ordered rows x cols matrix of cells."""

    def __init__(self, rows: List[List[Cell]]):
        self.rows = rows

    @property
    def shape(self) -> Tuple[int, int]:
        if not self.rows:
            return 0, 0
        return len(self.rows), len(self.rows[0])

    def cells(self) -> Iterator[Tuple[int, int, Cell]]:
        for i, row in enumerate(self.rows):
            for j, cell in enumerate(row):
                yield i, j, cell

    def codes(self) -> Set[str]:
        return {cell.code for _, _, cell in self.cells()}

    def find_unclaimed(self, code: str) -> Optional[Tuple[int, int]]:
        """Locate the unclaimed cell holding `code` (case-insensitive)."""
        wanted = normalize_code(code)
        if not wanted:
            return None
        for i, j, cell in self.cells():
            if not cell.claimed and cell.code == wanted:
                return i, j
        return None

    def claim(self, row: int, col: int, identity: str,
              device_signature=None, photo_ref: str = None) -> Cell:
        """Mark a cell claimed. Callers hold the session lock."""
        cell = self.rows[row][col]
        if cell.claimed:
            raise ValueError(f'Cell ({row}, {col}) is already claimed')
        claimed = replace(
            cell,
            claimed_by=identity,
            device_signature=device_signature,
            photo_ref=photo_ref
        )
        self.rows[row][col] = claimed
        return claimed

    def claimed_count(self) -> int:
        return sum(1 for _, _, cell in self.cells() if cell.claimed)

    def to_payload(self, reveal_codes: bool = True) -> List[List[Dict]]:
        return [[cell.to_dict(reveal_code=reveal_codes) for cell in row] for row in self.rows]


def normalize_code(code) -> str:
    """Submitted codes are matched case-insensitively."""
    if code is None:
        return ''
    return str(code).strip().upper()


class CodeGridService:
    """Service for drawing and refreshing attendance code grids."""

    @staticmethod
    def draw_code(taken: Set[str], length: int = CODE_LENGTH) -> str:
        """Draw a fresh code not present in `taken` (rejection and redraw)."""
        for _ in range(MAX_DRAW_ATTEMPTS):
            code = ''.join(secrets.choice(CODE_ALPHABET) for _ in range(length))
            if code not in taken:
                return code
        raise ValueError('Code namespace exhausted; use a smaller grid or longer codes')

    @staticmethod
    def generate(rows: int = DEFAULT_ROWS, cols: int = DEFAULT_COLS) -> Grid:
        """Produce a rows x cols grid of unique, unclaimed codes."""
        if rows < 1 or cols < 1:
            raise ValueError('Grid dimensions must be positive')

        taken: Set[str] = set()
        matrix = []
        for _ in range(rows):
            row = []
            for _ in range(cols):
                code = CodeGridService.draw_code(taken)
                taken.add(code)
                row.append(Cell(code=code))
            matrix.append(row)
        return Grid(matrix)

    @staticmethod
    def regenerate_unclaimed(grid: Grid) -> Grid:
        """
        Replace the code of every unclaimed cell.
        Claimed cells are carried over as the very same objects; new codes never
        collide with a live code or with a code retired by this refresh.
        """
        taken = grid.codes()
        matrix = []
        for row in grid.rows:
            new_row = []
            for cell in row:
                if cell.claimed:
                    new_row.append(cell)
                    continue
                code = CodeGridService.draw_code(taken)
                taken.add(code)
                new_row.append(replace(cell, code=code))
            matrix.append(new_row)
        return Grid(matrix)
