"""
Tests for CleaningWorkflow: preview, exclusions and apply
"""

import asyncio

import pytest

from mailcleaner.cleaning import (
    STATE_IDLE,
    STATE_PREVIEW_READY,
    STATE_PREVIEWING,
    CleaningWorkflow,
)
from mailcleaner.errors import AuthError, ValidationError
from tests.helpers import eventually, make_preview_item


@pytest.fixture
def toasts():
    return []


@pytest.fixture
def workflow(client, toasts) -> CleaningWorkflow:
    return CleaningWorkflow(client, notify=lambda message, undo_id=None: toasts.append((message, undo_id)))


# === Preview ===

class TestPreview:
    """Tests for phase one"""

    @pytest.mark.asyncio
    async def test_preview_lists_matches(self, workflow):
        items = await workflow.preview()

        assert [item.id for item in items] == ['p1', 'p2', 'p3', 'p4', 'p5']
        assert workflow.state == STATE_PREVIEW_READY
        assert workflow.message == '5 emails would be affected'
        assert workflow.all_included is True

    @pytest.mark.asyncio
    async def test_new_preview_replaces_old_and_resets_exclusions(self, fake_server, workflow):
        await workflow.preview()
        workflow.toggle_exclude('p1')

        fake_server.preview_items = [make_preview_item('q1', 'a@b.com', 'New match', 'ARCHIVE')]
        items = await workflow.preview()

        assert [item.id for item in items] == ['q1']
        assert workflow.preview_ids == ['q1']
        assert workflow.excluded == set()

    @pytest.mark.asyncio
    async def test_duplicate_ids_kept_once(self, fake_server, workflow):
        fake_server.preview_items = [
            make_preview_item('p1', 'a@b.com', 'One'),
            make_preview_item('p1', 'a@b.com', 'One again'),
            make_preview_item('p2', 'a@b.com', 'Two'),
        ]
        items = await workflow.preview()
        assert [item.id for item in items] == ['p1', 'p2']

    @pytest.mark.asyncio
    async def test_preview_failure(self, fake_server, workflow):
        fake_server.failures['/clean/preview'] = (500, {'error': 'Rule engine offline'})

        items = await workflow.preview()

        assert items is None
        assert workflow.error == 'Rule engine offline'
        assert workflow.state == STATE_IDLE

    @pytest.mark.asyncio
    async def test_stale_auth_failure_leaves_newer_preview_running(self, fake_server, workflow):
        first_gate, second_gate = asyncio.Event(), asyncio.Event()
        fake_server.preview_gates = [first_gate, second_gate]

        first = asyncio.create_task(workflow.preview())
        await eventually(lambda: fake_server.count('POST', '/clean/preview') == 1)
        second = asyncio.create_task(workflow.preview())
        await eventually(lambda: fake_server.count('POST', '/clean/preview') == 2)

        fake_server.session_valid = False
        first_gate.set()
        with pytest.raises(AuthError):
            await first
        assert workflow.state == STATE_PREVIEWING

        fake_server.session_valid = True
        second_gate.set()
        items = await second
        assert len(items) == 5
        assert workflow.state == STATE_PREVIEW_READY

    @pytest.mark.asyncio
    async def test_empty_preview(self, fake_server, workflow):
        fake_server.preview_items = []
        items = await workflow.preview()

        assert items == []
        assert workflow.state == STATE_PREVIEW_READY
        assert workflow.effective_ids == []

    @pytest.mark.asyncio
    async def test_has_delete_actions(self, fake_server, workflow):
        await workflow.preview()
        assert workflow.has_delete_actions is True

        fake_server.preview_items = [make_preview_item('p3', 'promo@shop.com', 'Sale', 'ARCHIVE')]
        await workflow.preview()
        assert workflow.has_delete_actions is False


# === Exclusions ===

class TestExclusions:
    """Tests for toggling items out of the apply set"""

    @pytest.mark.asyncio
    async def test_toggle_exclude(self, workflow):
        await workflow.preview()

        assert workflow.toggle_exclude('p2') is True
        assert workflow.effective_ids == ['p1', 'p3', 'p4', 'p5']
        assert workflow.toggle_exclude('p2') is False
        assert workflow.effective_ids == ['p1', 'p2', 'p3', 'p4', 'p5']

    @pytest.mark.asyncio
    async def test_unknown_id_ignored(self, workflow):
        await workflow.preview()
        assert workflow.toggle_exclude('nope') is False
        assert workflow.excluded == set()

    @pytest.mark.asyncio
    async def test_toggle_exclude_all(self, workflow):
        await workflow.preview()

        workflow.toggle_exclude_all(True)
        assert workflow.effective_ids == []
        assert workflow.all_included is False

        workflow.toggle_exclude_all(False)
        assert workflow.all_included is True


# === Apply ===

class TestApply:
    """Tests for phase two"""

    @pytest.mark.asyncio
    async def test_apply_submits_effective_ids(self, fake_server, workflow, toasts):
        """5 previewed, 2 excluded: exactly the other 3 are submitted"""
        await workflow.preview()
        workflow.toggle_exclude('p2')
        workflow.toggle_exclude('p4')

        result = await workflow.apply()

        assert fake_server.clean_requests == [{'ids': ['p1', 'p3', 'p5'], 'permanentDelete': False}]
        assert result.affected_count == 3
        assert result.message == 'Cleaning complete! 3 emails processed.'
        assert toasts == [('3 emails processed.', None)]

    @pytest.mark.asyncio
    async def test_apply_clears_preview(self, workflow):
        await workflow.preview()
        await workflow.apply()

        assert workflow.state == STATE_IDLE
        assert workflow.items == []
        assert workflow.excluded == set()

        with pytest.raises(ValidationError, match='Generate a preview'):
            await workflow.apply()

    @pytest.mark.asyncio
    async def test_permanent_delete_flag_sent(self, fake_server, workflow):
        await workflow.preview()
        await workflow.apply(permanent_delete=True)
        assert fake_server.clean_requests[0]['permanentDelete'] is True

    @pytest.mark.asyncio
    async def test_apply_without_preview_rejected(self, fake_server, workflow):
        with pytest.raises(ValidationError):
            await workflow.apply()
        assert fake_server.count('POST', '/clean') == 0

    @pytest.mark.asyncio
    async def test_empty_selection_rejected_without_network(self, fake_server, workflow):
        """Everything excluded: no request leaves the client"""
        await workflow.preview()
        workflow.toggle_exclude_all(True)

        with pytest.raises(ValidationError, match='No emails selected'):
            await workflow.apply()

        assert fake_server.count('POST', '/clean') == 0
        assert workflow.state == STATE_PREVIEW_READY

    @pytest.mark.asyncio
    async def test_failure_keeps_preview(self, fake_server, workflow, toasts):
        """A failed apply keeps items and exclusions for a retry"""
        await workflow.preview()
        workflow.toggle_exclude('p1')
        fake_server.failures['/clean'] = (500, {'error': 'Gmail quota exceeded'})

        result = await workflow.apply()

        assert result is None
        assert workflow.error == 'Gmail quota exceeded'
        assert workflow.state == STATE_PREVIEW_READY
        assert workflow.preview_ids == ['p1', 'p2', 'p3', 'p4', 'p5']
        assert workflow.excluded == {'p1'}
        assert toasts == []

        del fake_server.failures['/clean']
        result = await workflow.apply()
        assert result.affected_count == 4

    @pytest.mark.asyncio
    async def test_auth_error_propagates(self, fake_server, workflow):
        await workflow.preview()
        fake_server.session_valid = False

        with pytest.raises(AuthError):
            await workflow.apply()
        assert workflow.state == STATE_PREVIEW_READY
