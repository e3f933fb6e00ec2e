"""Test doubles for lorekeeper collaborators."""


class WordCounter:
    """Token counter that counts whitespace-separated words."""

    def count_tokens(self, text: str) -> int:
        return len((text or "").split())


class FixedRandom:
    """RNG returning a fixed sequence of values."""

    def __init__(self, *values: float):
        self.values = list(values) or [0.0]
        self.calls = 0

    def random(self) -> float:
        value = self.values[min(self.calls, len(self.values) - 1)]
        self.calls += 1
        return value


class FakeSearch:
    """In-memory similarity search keyed by scope.

    Unknown scopes raise, like a vector index with a missing collection.
    """

    def __init__(self, hits_by_scope=None, failing_scopes=()):
        self.hits_by_scope = hits_by_scope or {}
        self.failing_scopes = set(failing_scopes)
        self.calls = []

    async def query(self, text, scope, top_k, min_similarity):
        self.calls.append({"text": text, "scope": scope, "top_k": top_k, "min_similarity": min_similarity})
        if scope in self.failing_scopes:
            raise RuntimeError(f"index error in {scope}")
        if scope not in self.hits_by_scope:
            raise KeyError(scope)
        hits = [h for h in self.hits_by_scope[scope] if h["similarity"] >= min_similarity]
        return hits[:top_k]

    @property
    def scopes(self):
        return [c["scope"] for c in self.calls]


class FakeRoster:
    """Roster returning fixed characters and worlds."""

    def __init__(self, characters=None, worlds=None, fail=False):
        self.characters = characters or []
        self.worlds = worlds or []
        self.fail = fail

    def list_characters(self):
        if self.fail:
            raise RuntimeError("roster unavailable")
        return self.characters

    def list_worlds(self):
        if self.fail:
            raise RuntimeError("roster unavailable")
        return self.worlds


class FakeCounter:
    """Message counter returning a fixed count, or raising."""

    def __init__(self, count=0, fail=False):
        self.count = count
        self.fail = fail
        self.calls = []

    async def get_message_count_since(self, scene_id, timestamp):
        self.calls.append((scene_id, timestamp))
        if self.fail:
            raise RuntimeError("database locked")
        return self.count


def hit(text, similarity, **metadata):
    return {"text": text, "similarity": similarity, "metadata": metadata}
