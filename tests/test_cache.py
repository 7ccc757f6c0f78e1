import threading

from core.cache import EvaluationCache
from core.policies import AccessContext, PermissionQuery, PermissionResult


class FakeTimer:
    def __init__(self):
        self.now = 0.0

    def __call__(self):
        return self.now


def query(user_id="dara", action="read", **context):
    return PermissionQuery(user_id, action, "case", AccessContext(**context))


ALLOW = PermissionResult.permit("All permission checks passed")


class TestEvaluationCache:
    def test_miss_then_hit(self):
        cache = EvaluationCache()
        assert cache.get(query()) is None
        cache.set(query(), ALLOW)
        assert cache.get(query()) is ALLOW

    def test_context_is_part_of_key(self):
        cache = EvaluationCache()
        cache.set(query(record_id="A"), ALLOW)
        assert cache.get(query(record_id="B")) is None

    def test_no_ttl_never_expires(self):
        timer = FakeTimer()
        cache = EvaluationCache(timer=timer)
        cache.set(query(), ALLOW)
        timer.now = 10 ** 9
        assert cache.get(query()) is ALLOW

    def test_ttl_expiry(self):
        timer = FakeTimer()
        cache = EvaluationCache(ttl_seconds=60, timer=timer)
        cache.set(query(), ALLOW)
        timer.now = 59.9
        assert cache.get(query()) is ALLOW
        timer.now = 60
        assert cache.get(query()) is None
        assert len(cache) == 0

    def test_invalidate(self):
        cache = EvaluationCache()
        cache.set(query(), ALLOW)
        assert cache.invalidate(query())
        assert not cache.invalidate(query())

    def test_invalidate_user(self):
        cache = EvaluationCache()
        cache.set(query("dara", "read"), ALLOW)
        cache.set(query("dara", "write"), ALLOW)
        cache.set(query("sokha", "read"), ALLOW)
        assert cache.invalidate_user("dara") == 2
        assert len(cache) == 1

    def test_concurrent_writers(self):
        cache = EvaluationCache()

        def fill(user_id):
            for i in range(200):
                cache.set(query(user_id, f"action-{i}"), ALLOW)
                cache.get(query(user_id, f"action-{i // 2}"))

        threads = [threading.Thread(target=fill, args=(f"user-{n}",)) for n in range(8)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()
        assert len(cache) == 8 * 200
