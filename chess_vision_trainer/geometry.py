from __future__ import annotations

from dataclasses import dataclass
from enum import StrEnum
from functools import lru_cache

import chess


class SquareColor(StrEnum):
    LIGHT = "light"
    DARK = "dark"


class PieceKind(StrEnum):
    KNIGHT = "knight"
    BISHOP = "bishop"


_PIECE_TYPES: dict[PieceKind, chess.PieceType] = {
    PieceKind.KNIGHT: chess.KNIGHT,
    PieceKind.BISHOP: chess.BISHOP,
}


@dataclass(frozen=True, slots=True, order=True)
class Square:
    file_index: int  # 0 = a
    rank_index: int  # 0 = rank 1

    def __post_init__(self) -> None:
        if not (0 <= self.file_index < 8 and 0 <= self.rank_index < 8):
            raise ValueError(f"square out of range: ({self.file_index}, {self.rank_index})")

    @classmethod
    def parse(cls, name: str) -> Square:
        text = str(name).strip().lower()
        try:
            index = chess.parse_square(text)
        except ValueError as exc:
            raise ValueError(f"not a square name: {name!r}") from exc
        return cls.from_index(index)

    @classmethod
    def from_index(cls, index: chess.Square) -> Square:
        return cls(chess.square_file(index), chess.square_rank(index))

    @property
    def index(self) -> chess.Square:
        return chess.square(self.file_index, self.rank_index)

    @property
    def name(self) -> str:
        return chess.square_name(self.index)

    @property
    def file(self) -> str:
        return chess.FILE_NAMES[self.file_index]

    @property
    def rank(self) -> int:
        return self.rank_index + 1

    def __str__(self) -> str:
        return self.name


# File-major: a1, a2, ..., h8.
ALL_SQUARES: tuple[Square, ...] = tuple(Square(f, r) for f in range(8) for r in range(8))


def as_square(value: Square | str) -> Square:
    if isinstance(value, Square):
        return value
    return Square.parse(value)


def square_color(square: Square | str) -> SquareColor:
    # a1 is dark.
    if chess.BB_SQUARES[as_square(square).index] & chess.BB_LIGHT_SQUARES:
        return SquareColor.LIGHT
    return SquareColor.DARK


@lru_cache(maxsize=None)
def _reachable(piece: PieceKind, origin: Square) -> frozenset[Square]:
    if piece is PieceKind.KNIGHT:
        attacks = chess.SquareSet(chess.BB_KNIGHT_ATTACKS[origin.index])
    else:
        # Lone piece on an empty board, so sliders run to the edge.
        board = chess.BaseBoard.empty()
        board.set_piece_at(origin.index, chess.Piece(_PIECE_TYPES[piece], chess.WHITE))
        attacks = board.attacks(origin.index)
    return frozenset(Square.from_index(sq) for sq in attacks)


def reachable_squares(piece: PieceKind | str, origin: Square | str) -> frozenset[Square]:
    """Squares a single move of ``piece`` can reach from ``origin`` on an empty board."""

    return _reachable(PieceKind(piece), as_square(origin))


def is_reachable(piece: PieceKind | str, origin: Square | str, target: Square | str) -> bool:
    return as_square(target) in reachable_squares(piece, origin)
