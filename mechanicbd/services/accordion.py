"""FAQ accordion state carried in the ``?open=`` query parameter."""


def parse_open(value: str | None) -> frozenset[int]:
    if not value:
        return frozenset()
    opened = set()
    for part in value.split(","):
        part = part.strip()
        if part.isdigit():
            opened.add(int(part))
    return frozenset(opened)


def format_open(opened: frozenset[int]) -> str:
    return ",".join(str(i) for i in sorted(opened))


class FaqAccordion:
    def __init__(self, item_count: int, opened: frozenset[int] = frozenset()):
        self.item_count = item_count
        self.opened = frozenset(i for i in opened if 0 <= i < item_count)

    @classmethod
    def from_query(cls, item_count: int, value: str | None) -> "FaqAccordion":
        return cls(item_count, parse_open(value))

    def is_open(self, index: int) -> bool:
        return index in self.opened

    def toggled(self, index: int) -> "FaqAccordion":
        """Return the state after toggling ``index``; toggling twice is a no-op."""
        return FaqAccordion(self.item_count, self.opened ^ {index})

    def toggle_query(self, index: int) -> str:
        return format_open(self.toggled(index).opened)
