"""Tests for cascading propagation along the dependency graph."""
import pytest

from caseform.options import Option
from caseform.propagation import PropagationEngine
from caseform.session import ViewSession

from conftest import RecordingSetValue, lookup_field, text_field, view_of


def _register_all(session, hooks):
    for field in session.fields:
        session.register(field, hooks[field.index])


@pytest.fixture
def chain_session():
    """A → B → C: B's lookup takes A as parameter p, C's takes B as q."""
    session = ViewSession.from_view(view_of(
        text_field("A"),
        lookup_field("B", "D_B", [("p", ".A")]),
        lookup_field("C", "D_C", [("q", ".B")]),
    ), generation=1)
    return session


class TestCascade:
    """Tests for dependent option refresh."""

    @pytest.mark.asyncio
    async def test_a_b_c_cascade(self, chain_session):
        """Changing A refreshes B with p=X, selects B's first option, then refreshes C."""
        hooks = {
            1: RecordingSetValue(),
            2: RecordingSetValue(lambda r: [Option("B1", "b1"), Option("B2", "b2")]),
            3: RecordingSetValue(lambda r: [Option("C1", "c1")]),
        }
        _register_all(chain_session, hooks)
        a = chain_session.field_at(1)

        result = await PropagationEngine(chain_session).propagate(a, "X")

        (b_request,) = hooks[2].refreshes
        assert b_request.refresh is True
        assert (b_request.param_key, b_request.param_value) == ("p", "X")
        assert [p.name for p in b_request.params] == ["p"]
        assert hooks[2].values == ["b1"]
        assert chain_session.store.get("B") == "b1"

        (c_request,) = hooks[3].refreshes
        assert (c_request.param_key, c_request.param_value) == ("q", "b1")
        assert hooks[3].values == ["c1"]
        assert chain_session.store.get("C") == "c1"

        assert hooks[1].calls == []
        assert result.visited == [1, 2, 3]
        assert result.refreshed == [2, 3]

    @pytest.mark.asyncio
    async def test_empty_options_clear_and_stop(self, chain_session):
        """An empty option list clears the dependent and ends the cascade there."""
        chain_session.store.set("B", "stale")
        hooks = {
            1: RecordingSetValue(),
            2: RecordingSetValue(lambda r: []),
            3: RecordingSetValue(lambda r: [Option("C1", "c1")]),
        }
        _register_all(chain_session, hooks)

        result = await PropagationEngine(chain_session).propagate(chain_session.field_at(1), "X")

        assert chain_session.store.get("B") == ""
        assert hooks[2].values == []
        assert hooks[3].calls == []
        assert result.cleared == [2]

    @pytest.mark.asyncio
    async def test_failing_hook_is_local(self, chain_session):
        """A hook that raises is treated as an empty option list."""
        async def broken(value):
            raise RuntimeError("data page down")

        chain_session.register(chain_session.field_at(1), RecordingSetValue())
        chain_session.register(chain_session.field_at(2), broken)
        chain_session.register(chain_session.field_at(3), RecordingSetValue())

        result = await PropagationEngine(chain_session).propagate(chain_session.field_at(1), "X")

        assert result.cleared == [2]
        assert chain_session.store.get("B") == ""

    @pytest.mark.asyncio
    async def test_unregistered_neighbor_is_skipped(self, chain_session):
        """Neighbors that have not rendered yet are not touched."""
        a_hook = RecordingSetValue()
        chain_session.register(chain_session.field_at(1), a_hook)
        c_hook = RecordingSetValue(lambda r: [Option("C1", "c1")])
        chain_session.register(chain_session.field_at(3), c_hook)

        result = await PropagationEngine(chain_session).propagate(chain_session.field_at(1), "X")

        assert result.visited == [1]
        assert c_hook.calls == []

    @pytest.mark.asyncio
    async def test_visited_set_is_per_call(self, chain_session):
        """Each top-level propagation starts with a fresh visited set."""
        hooks = {
            1: RecordingSetValue(),
            2: RecordingSetValue(lambda r: [Option("B1", "b1")]),
            3: RecordingSetValue(lambda r: []),
        }
        _register_all(chain_session, hooks)
        engine = PropagationEngine(chain_session)

        await engine.propagate(chain_session.field_at(1), "X")
        await engine.propagate(chain_session.field_at(1), "Y")

        assert [r.param_value for r in hooks[2].refreshes] == ["X", "Y"]


class TestMirroring:
    """Tests for fields sharing a reference."""

    @pytest.mark.asyncio
    async def test_mirrored_fields_stay_equal(self):
        """Every other field on the reference receives the value; the store agrees."""
        session = ViewSession.from_view(view_of(
            text_field("Status"), text_field("Status"), text_field("Status"),
        ), generation=1)
        hooks = {i: RecordingSetValue() for i in (1, 2, 3)}
        _register_all(session, hooks)

        result = await PropagationEngine(session).propagate(session.field_at(2), "Open")

        assert hooks[1].values == ["Open"]
        assert hooks[3].values == ["Open"]
        assert hooks[2].calls == []
        assert session.store.get("Status") == "Open"
        assert sorted(result.mirrored) == [1, 3]

    @pytest.mark.asyncio
    async def test_mirrored_write_does_not_cascade(self):
        """A mirrored node's own dependents are not refreshed through it."""
        session = ViewSession.from_view(view_of(
            text_field("Country"),
            text_field("Country"),
            lookup_field("State", "D_States", [("Country", ".Country")]),
        ), generation=1)
        hooks = {
            1: RecordingSetValue(),
            2: RecordingSetValue(),
            3: RecordingSetValue(lambda r: [Option("S", "s")]),
        }
        _register_all(session, hooks)

        await PropagationEngine(session).propagate(session.field_at(1), "FR")

        assert hooks[2].values == ["FR"]
        assert len(hooks[3].refreshes) == 1


class TestTermination:
    """Tests for cyclic graphs and stale views."""

    @pytest.mark.asyncio
    async def test_cycle_visits_each_node_once(self):
        """Mutually dependent lookups terminate with every node visited once."""
        session = ViewSession.from_view(view_of(
            lookup_field("A", "D_A", [("b", ".B")]),
            lookup_field("B", "D_B", [("a", ".A")]),
            lookup_field("C", "D_C", [("a", ".A"), ("b", ".B")]),
        ), generation=1)
        hooks = {i: RecordingSetValue(lambda r, i=i: [Option(f"v{i}", f"v{i}")]) for i in (1, 2, 3)}
        _register_all(session, hooks)

        result = await PropagationEngine(session).propagate(session.field_at(1), "x")

        assert sorted(result.visited) == [1, 2, 3]
        assert len(result.visited) == len(set(result.visited))
        assert hooks[1].calls == []
        assert len(hooks[2].refreshes) == 1
        assert len(hooks[3].refreshes) == 1

    @pytest.mark.asyncio
    async def test_replaced_view_voids_the_pass(self, chain_session):
        """Once the view is replaced mid-pass nothing more is written."""
        current = {"value": True}

        def options_then_replace(request):
            current["value"] = False
            return [Option("B1", "b1")]

        hooks = {
            1: RecordingSetValue(),
            2: RecordingSetValue(options_then_replace),
            3: RecordingSetValue(lambda r: [Option("C1", "c1")]),
        }
        _register_all(chain_session, hooks)
        engine = PropagationEngine(chain_session, is_current=lambda: current["value"])

        result = await engine.propagate(chain_session.field_at(1), "X")

        assert result.stale
        assert hooks[2].values == []
        assert hooks[3].calls == []
        assert chain_session.store.get("B") == ""
