import pytest

from prisonrp.errors import AuthorizationError, InvalidTransitionError, ValidationError
from prisonrp.extensions import db
from prisonrp.services.announcements import AnnouncementService
from prisonrp.services.audit import get_activity_logs, rule_history
from prisonrp.services.categories import CategoryService
from prisonrp.services.rules import RuleService
from prisonrp.services.workflow import (
    announcement_workflow,
    ensure_no_client_status,
    pending_approvals,
    rule_workflow,
)


@pytest.fixture()
def pending_rule(app, ctx, staff, category):
    return RuleService.create_rule(staff['editor'], category['id'], 'No RDM', 'Do not kill randomly.')


class TestRuleWorkflow:
    def test_editor_submission_waits_for_review(self, pending_rule):
        assert pending_rule['status'] == 'pending_approval'
        assert pending_rule['submitted_at'] is not None
        assert [r['id'] for r in pending_approvals()['rules']] == [pending_rule['id']]

    def test_moderator_approves(self, pending_rule, staff):
        approved = rule_workflow.approve(pending_rule['id'], staff['moderator'], 'Looks good')
        assert approved['status'] == 'approved'
        assert approved['reviewed_by'] == staff['moderator'].id
        assert approved['review_notes'] == 'Looks good'
        assert approved['reviewed_at'] is not None
        assert pending_approvals()['rules'] == []
        assert rule_history(pending_rule['id'])[0]['change_type'] == 'approved'

    def test_reapproval_is_allowed(self, pending_rule, staff):
        rule_workflow.approve(pending_rule['id'], staff['moderator'])
        again = rule_workflow.approve(pending_rule['id'], staff['admin'], 'Still fine')
        assert again['status'] == 'approved'
        assert again['reviewed_by'] == staff['admin'].id

    def test_editor_cannot_review(self, pending_rule, staff):
        with pytest.raises(AuthorizationError):
            rule_workflow.approve(pending_rule['id'], staff['editor'])
        assert RuleService.get_rule(pending_rule['id'])['status'] == 'pending_approval'

    def test_reject_requires_notes(self, pending_rule, staff):
        with pytest.raises(ValidationError):
            rule_workflow.reject(pending_rule['id'], staff['moderator'], '   ')
        assert RuleService.get_rule(pending_rule['id'])['status'] == 'pending_approval'

    def test_reject_records_notes(self, pending_rule, staff):
        rejected = rule_workflow.reject(pending_rule['id'], staff['moderator'], 'Too vague')
        assert rejected['status'] == 'rejected'
        assert rejected['review_notes'] == 'Too vague'
        logs = get_activity_logs(action_type='reject')
        assert logs[0]['resource_id'] == pending_rule['id']

    def test_only_pending_items_can_be_rejected(self, pending_rule, staff):
        rule_workflow.approve(pending_rule['id'], staff['moderator'])
        with pytest.raises(InvalidTransitionError):
            rule_workflow.reject(pending_rule['id'], staff['moderator'], 'Changed my mind')

    def test_drafts_cannot_be_approved(self, ctx, staff, category):
        draft = RuleService.create_rule(staff['editor'], category['id'], 'Draft', 'Work in progress', mode='draft')
        assert draft['status'] == 'draft'
        assert draft['submitted_at'] is None
        with pytest.raises(InvalidTransitionError):
            rule_workflow.approve(draft['id'], staff['moderator'])

    def test_edit_starts_a_new_cycle(self, pending_rule, staff):
        rule_workflow.reject(pending_rule['id'], staff['moderator'], 'Fix wording')
        edited = RuleService.update_rule(staff['editor'], pending_rule['id'], {'content': 'Never kill randomly.'})
        assert edited['status'] == 'pending_approval'
        assert edited['reviewed_by'] is None
        assert edited['review_notes'] is None
        assert edited['reviewed_at'] is None

    def test_moderator_edit_of_approved_rule_stays_approved(self, pending_rule, staff):
        rule_workflow.approve(pending_rule['id'], staff['moderator'])
        edited = RuleService.update_rule(staff['moderator'], pending_rule['id'], {'title': 'No Random Deathmatch'})
        assert edited['status'] == 'approved'
        assert edited['reviewed_by'] is None


class TestAnnouncementWorkflow:
    def test_approval_activates_immediate_announcement(self, ctx, staff):
        created = AnnouncementService.create(staff['editor'], {'title': 'Event', 'content': 'Tonight!'})
        assert created['status'] == 'pending_approval'
        assert created['published_at'] is None

        approved = announcement_workflow.approve(created['id'], staff['moderator'])
        assert approved['status'] == 'approved'
        assert approved['is_active']
        assert approved['published_at'] is not None

    def test_pending_announcements_are_listed(self, ctx, staff):
        created = AnnouncementService.create(staff['editor'], {'title': 'Event', 'content': 'Tonight!'})
        assert [a['id'] for a in pending_approvals()['announcements']] == [created['id']]


def test_client_status_is_refused():
    with pytest.raises(ValidationError):
        ensure_no_client_status({'title': 'x', 'status': 'approved'})
    ensure_no_client_status({'title': 'x', 'mode': 'submit'})


def test_approval_notifies_discord_without_failing(ctx, staff, category, monkeypatch):
    calls = []

    def failing_notify(*args, **kwargs):
        calls.append(args)
        raise RuntimeError('webhook down')

    monkeypatch.setattr('prisonrp.services.workflow.DiscordNotifier.notify_rule', failing_notify)
    rule = RuleService.create_rule(staff['editor'], category['id'], 'Title', 'Content')
    approved = rule_workflow.approve(rule['id'], staff['moderator'])
    assert approved['status'] == 'approved'
    assert calls == [(rule['id'], 'approved')]
    assert db.get("SELECT status FROM rules WHERE id = %s", (rule['id'],))['status'] == 'approved'


class TestPublishedRuleEdits:
    @pytest.fixture()
    def live_rule(self, pending_rule, staff):
        return rule_workflow.approve(pending_rule['id'], staff['moderator'])

    def test_editor_edit_keeps_the_public_text(self, live_rule, staff):
        edited = RuleService.update_rule(staff['editor'], live_rule['id'], {'content': 'Never kill randomly.'})
        assert edited['status'] == 'approved'
        assert edited['content'] == 'Do not kill randomly.'
        assert RuleService.get_rule_by_code('A.1')['content'] == 'Do not kill randomly.'

        revision = RuleService.get_revision(live_rule['id'])
        assert revision['status'] == 'pending_approval'
        assert revision['content'] == 'Never kill randomly.'
        assert revision['title'] == 'No RDM'
        assert [r['rule_id'] for r in pending_approvals()['rule_revisions']] == [live_rule['id']]
        assert rule_history(live_rule['id'])[0]['change_type'] == 'draft_edit'

    def test_approving_promotes_the_revision(self, live_rule, staff):
        RuleService.update_rule(staff['editor'], live_rule['id'], {'title': 'No Random Deathmatch'})
        approved = rule_workflow.approve(live_rule['id'], staff['moderator'], 'Clearer')

        assert approved['status'] == 'approved'
        assert approved['title'] == 'No Random Deathmatch'
        assert approved['review_notes'] == 'Clearer'
        assert 'random deathmatch' in approved['searchable_content']
        assert RuleService.get_revision(live_rule['id']) is None
        assert pending_approvals()['rule_revisions'] == []

    def test_rejecting_keeps_the_live_rule(self, live_rule, staff):
        RuleService.update_rule(staff['editor'], live_rule['id'], {'content': 'Kill whoever.'})
        rejected = rule_workflow.reject(live_rule['id'], staff['moderator'], 'Wrong direction')

        assert rejected['status'] == 'approved'
        assert rejected['content'] == 'Do not kill randomly.'
        revision = RuleService.get_revision(live_rule['id'])
        assert revision['status'] == 'rejected'
        assert revision['review_notes'] == 'Wrong direction'

    def test_draft_edits_are_not_reviewable(self, live_rule, staff):
        RuleService.update_rule(staff['editor'], live_rule['id'], {'content': 'Half done'}, mode='draft')
        assert RuleService.get_revision(live_rule['id'])['status'] == 'draft'
        assert pending_approvals()['rule_revisions'] == []

        again = rule_workflow.approve(live_rule['id'], staff['moderator'])
        assert again['content'] == 'Do not kill randomly.'
        assert RuleService.get_revision(live_rule['id'])['status'] == 'draft'

    def test_editor_cannot_take_over_another_editors_revision(self, live_rule, staff, second_editor):
        RuleService.update_rule(staff['editor'], live_rule['id'], {'content': 'Mine'})
        with pytest.raises(AuthorizationError):
            RuleService.update_rule(second_editor, live_rule['id'], {'content': 'Theirs'})
        assert RuleService.get_revision(live_rule['id'])['content'] == 'Mine'

    def test_editor_cannot_move_a_published_rule(self, live_rule, staff):
        other = CategoryService.create('B', 'Prison', actor_id=staff['admin'].id)
        with pytest.raises(AuthorizationError):
            RuleService.update_rule(staff['editor'], live_rule['id'], {'categoryId': other['id']})
        assert RuleService.get_rule(live_rule['id'])['full_code'] == 'A.1'

    def test_moderator_direct_edit_replaces_their_own_draft(self, live_rule, staff):
        RuleService.update_rule(staff['moderator'], live_rule['id'], {'content': 'Sketch'}, mode='draft')
        assert RuleService.get_revision(live_rule['id'])['status'] == 'draft'

        edited = RuleService.update_rule(staff['moderator'], live_rule['id'], {'content': 'Final wording'})
        assert edited['content'] == 'Final wording'
        assert RuleService.get_revision(live_rule['id']) is None

    def test_draft_view_overlays_the_revision(self, live_rule, staff):
        assert RuleService.get_draft(live_rule['id'])['is_draft_edit'] is False

        RuleService.update_rule(staff['editor'], live_rule['id'], {'content': 'Proposed'})
        draft = RuleService.get_draft(live_rule['id'])
        assert draft['is_draft_edit'] is True
        assert draft['content'] == 'Proposed'
        assert draft['draft_status'] == 'pending_approval'
        assert draft['draft_author'] == 'Eddie Editor'


def test_editor_cannot_edit_someone_elses_unpublished_rule(ctx, staff, category, second_editor):
    rule = RuleService.create_rule(staff['editor'], category['id'], 'Theirs', 'x')
    with pytest.raises(AuthorizationError):
        RuleService.update_rule(second_editor, rule['id'], {'content': 'y'})
    assert RuleService.get_rule(rule['id'])['content'] == 'x'
