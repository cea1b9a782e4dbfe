"""Tests for the cascading disable engine."""

from datetime import date

import pytest

from calendario.core.exceptions import ValidationError
from calendario.services.cascade_disable import CascadingDisableEngine, DisableMode
from fakes import FakeStore, make_client_process, make_instance

CUTOFF = date(2025, 6, 1)


def _store():
    return FakeStore(
        client_processes=[
            make_client_process(10, 2025, 5),
            make_client_process(11, 2025, 6),
            make_client_process(20, 2025, 6, client_id="C002"),
        ],
        instances=[
            make_instance(1, client_process_id=10, template_id=7, deadline_date=date(2025, 5, 31)),
            make_instance(2, client_process_id=11, template_id=7, deadline_date=date(2025, 6, 1)),
            make_instance(3, client_process_id=11, template_id=8, deadline_date=date(2025, 6, 15)),
            make_instance(4, client_process_id=11, template_id=9, deadline_date=date(2025, 6, 20),
                          enabled=False),
            make_instance(5, client_process_id=20, template_id=7, deadline_date=date(2025, 6, 10),
                          client_id="C002"),
        ],
    )


class TestDisableByTemplates:
    def test_only_instances_on_or_after_cutoff(self):
        store = _store()
        outcome = CascadingDisableEngine(store).disable_by_templates([7], CUTOFF, "C001")

        assert outcome.status == "success"
        assert store.instances[1].enabled is True
        assert store.instances[2].enabled is False
        assert store.audits == []

    def test_other_clients_untouched(self):
        store = _store()
        CascadingDisableEngine(store).disable_by_templates([7], CUTOFF, "C001")
        assert store.instances[5].enabled is True

    def test_duplicate_ids_issue_one_command(self):
        store = _store()
        outcome = CascadingDisableEngine(store).disable_by_templates([7, 7, 8], CUTOFF, "C001")
        assert [t for t, _, _ in store.disabled] == [7, 8]
        assert outcome.attempted == 2

    def test_failure_does_not_stop_remaining_templates(self):
        store = _store()
        store.fail_disable = {7}
        outcome = CascadingDisableEngine(store).disable_by_templates([7, 8], CUTOFF, "C001")

        assert outcome.status == "partial"
        assert outcome.failed_ids == [7]
        assert store.instances[3].enabled is False

    def test_cutoff_required(self):
        with pytest.raises(ValidationError):
            CascadingDisableEngine(_store()).disable_by_templates([7], None, "C001")


class TestDisableByProcessInstances:
    def test_resolves_enabled_templates(self):
        engine = CascadingDisableEngine(_store())
        assert engine.resolve_template_ids([11]) == [7, 8]

    def test_template_wide_across_processes(self):
        """Selecting process 11 disables template 7 from the cutoff in every
        process of the client."""
        store = _store()
        store.instances[1].deadline_date = date(2025, 6, 5)
        outcome = CascadingDisableEngine(store).disable_by_process_instances([11], CUTOFF, "C001")

        assert outcome.status == "success"
        assert [t for t, _, _ in store.disabled] == [7, 8]
        assert store.instances[1].enabled is False

    def test_no_enabled_instances_is_noop(self):
        store = _store()
        store.instances[2].enabled = False
        store.instances[3].enabled = False
        outcome = CascadingDisableEngine(store).disable_by_process_instances([11], CUTOFF, "C001")
        assert outcome.status == "noop"
        assert store.disabled == []

    def test_read_failure_is_noop(self):
        store = _store()
        store.fail_reads = True
        outcome = CascadingDisableEngine(store).disable_by_process_instances([11], CUTOFF, "C001")
        assert outcome.status == "noop"


class TestDisableDispatch:
    def test_mode_by_value(self):
        store = _store()
        CascadingDisableEngine(store).disable("hitos", [8], CUTOFF, "C001")
        assert store.disabled == [(8, CUTOFF, "C001")]

    def test_process_mode(self):
        store = _store()
        CascadingDisableEngine(store).disable(DisableMode.PROCESSES, [11], CUTOFF, "C001")
        assert len(store.disabled) == 2

    def test_unknown_mode(self):
        with pytest.raises(ValidationError) as exc_info:
            CascadingDisableEngine(_store()).disable("clientes", [1], CUTOFF, "C001")
        assert exc_info.value.details == {"modo": "invalid"}
