import random
from dataclasses import dataclass

OPERATORS = ("+", "-", "×")


@dataclass(frozen=True)
class Challenge:
    question_text: str
    expected_answer: int

    def to_dict(self) -> dict:
        return {"q": self.question_text, "a": self.expected_answer}

    @classmethod
    def from_dict(cls, data: dict) -> "Challenge":
        return cls(question_text=str(data["q"]), expected_answer=int(data["a"]))


def generate(rng: random.Random | None = None) -> Challenge:
    """
    Simple arithmetic challenge with operands in [1, 10].
    Subtraction puts the larger operand first so the answer is never negative.
    """
    rng = rng or random
    a = rng.randint(1, 10)
    b = rng.randint(1, 10)
    op = rng.choice(OPERATORS)

    if op == "-":
        a, b = max(a, b), min(a, b)
        return Challenge(f"{a} - {b} = ?", a - b)
    if op == "×":
        return Challenge(f"{a} × {b} = ?", a * b)
    return Challenge(f"{a} + {b} = ?", a + b)


def parse_answer(text) -> int | None:
    if text is None:
        return None
    try:
        return int(str(text).strip())
    except ValueError:
        return None
