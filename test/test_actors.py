"""
Test for the cfquery query actor
"""

import pykka
import pytest

from actors import QueryActor, evaluate_all
from error_handling import QueryError, QueryNameError


class TestQueryActor:
    """Test evaluation through pykka"""

    @pytest.fixture
    def actor_ref(self, dataset):
        """Start an actor and stop every actor afterwards"""
        ref = QueryActor.start(dataset)
        yield ref
        pykka.ActorRegistry.stop_all()

    def test_proxy_evaluate(self, actor_ref):
        result = actor_ref.proxy().evaluate("${x} + 1").get()
        assert list(result) == [2.0, 3.0, 4.0]

    def test_ask(self, actor_ref):
        result = actor_ref.ask({'query': "${distance}", 'unit': "m"})
        assert result == pytest.approx([1000.0, 2500.0])

    def test_ask_without_unit(self, actor_ref):
        assert list(actor_ref.ask({'query': "1 + 1"})) == [2.0]

    def test_errors_reach_the_caller(self, actor_ref):
        with pytest.raises(QueryNameError):
            actor_ref.ask({'query': "${nope}"})

    def test_bad_message(self, actor_ref):
        with pytest.raises(QueryError, match="unsupported message"):
            actor_ref.ask("1 + 1")


class TestEvaluateAll:
    """Test batch evaluation"""

    def test_results_in_order(self, dataset):
        results = evaluate_all(dataset, ["1 + 1", "${x} * 2", ""])
        assert list(results[0]) == [2.0]
        assert list(results[1]) == [2.0, 4.0, 6.0]
        assert len(results[2]) == 0

    def test_unit(self, dataset):
        results = evaluate_all(dataset, ["${distance}"], unit="m")
        assert results[0] == pytest.approx([1000.0, 2500.0])

    def test_actor_stopped_after_error(self, dataset):
        with pytest.raises(QueryNameError):
            evaluate_all(dataset, ["${nope}"])
        assert pykka.ActorRegistry.get_all() == []
