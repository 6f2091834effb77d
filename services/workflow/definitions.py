"""Static workflow definitions and per-status metadata.

Workflows are configuration, not behavior: adding a health plan means adding
another ordered step list to WORKFLOWS. Every status-keyed lookup (next
action, estimated completion, complexity, criticality, display style) reads
from STATUS_PROFILES so a new status is added in exactly one place.
"""

from typing import Dict, NamedTuple, Optional, Tuple
from common.enums import Criticality, HealthPlan
from services.tasks.schemas import AutomationRule, RuleActions, RuleConditions, WorkflowConfig, WorkflowStep

DEFAULT_NEXT_ACTION = "Review case and determine next steps"
DEFAULT_ESTIMATED_DAYS = 14
DEFAULT_RECOMMENDED_DAYS = 7


class StatusProfile(NamedTuple):
    """Everything the task pipeline knows about one status."""

    next_action: str = DEFAULT_NEXT_ACTION
    estimated_days: int = DEFAULT_ESTIMATED_DAYS
    is_complex: bool = False
    criticality: Criticality = Criticality.STANDARD
    palette: str = "gray"
    icon: str = "FileText"


def _step(status, next_status, days, actions, conditions, description, can_skip=False):
    return WorkflowStep(
        status=status,
        next_status=next_status,
        recommended_days=days,
        required_actions=actions,
        auto_advance_conditions=conditions,
        can_skip=can_skip,
        description=description,
    )


KAISER_WORKFLOW = WorkflowConfig(
    name="Kaiser Permanente CalAIM Workflow",
    health_plan=HealthPlan.KAISER,
    steps=[
        _step("Pre-T2038, Compiling Docs", "T2038, Not Requested, Doc Collection", 7,
              ["Gather member documentation", "Complete initial assessment"],
              ["documents_complete", "assessment_reviewed"],
              "Compile all necessary documentation before T2038 request"),
        _step("T2038, Not Requested, Doc Collection", "T2038 Request Ready", 7,
              ["Collect outstanding documents", "Confirm member eligibility"],
              ["documents_collected"],
              "Documents still being collected, T2038 not yet requested"),
        _step("T2038 Request Ready", "T2038 Requested", 2,
              ["Submit T2038 request to Kaiser"],
              ["t2038_submitted"],
              "T2038 packet complete and ready to submit"),
        _step("T2038 Requested", "T2038 received, Need First Contact", 14,
              ["Submit T2038 request", "Follow up with Kaiser"],
              ["t2038_received"],
              "T2038 authorization request submitted to Kaiser"),
        _step("T2038 received, Need First Contact", "T2038 received, doc collection", 7,
              ["Contact member", "Schedule initial meeting"],
              ["member_contacted", "meeting_scheduled"],
              "Initial member contact required"),
        _step("T2038 received, doc collection", "RN Visit Needed", 14,
              ["Collect additional documents", "Verify member information"],
              ["documents_collected", "info_verified"],
              "Collect additional required documentation"),
        _step("RN Visit Needed", "RN/MSW Scheduled", 7,
              ["Schedule RN assessment", "Coordinate with member"],
              ["rn_visit_scheduled"],
              "RN assessment visit required"),
        _step("RN/MSW Scheduled", "RN Visit Complete", 14,
              ["Conduct RN visit", "Complete assessment"],
              ["rn_visit_completed", "assessment_submitted"],
              "RN/MSW assessment visit scheduled"),
        _step("RN Visit Complete", "Tier Level Request Needed", 3,
              ["Review RN assessment", "Prepare tier level request"],
              ["assessment_reviewed"],
              "RN assessment completed"),
        _step("Tier Level Request Needed", "Tier Level Requested", 3,
              ["Prepare tier level request"],
              ["tier_request_ready"],
              "Tier level request being prepared"),
        _step("Tier Level Requested", "Tier Level Received", 14,
              ["Submit tier level request", "Follow up with Kaiser"],
              ["tier_level_received"],
              "Tier level determination requested"),
        _step("Tier Level Received", "RCFE Needed", 3,
              ["Review tier level", "Begin RCFE search"],
              ["tier_level_approved", "rcfe_search_started"],
              "Tier level received, begin RCFE placement"),
        _step("RCFE Needed", "RCFE_Located", 21,
              ["Search for appropriate RCFE", "Contact facilities"],
              ["rcfe_identified", "placement_confirmed"],
              "Search for appropriate RCFE placement"),
        _step("RCFE_Located", "R&B Needed", 7,
              ["Confirm RCFE placement", "Prepare R&B documentation"],
              ["placement_confirmed", "rb_docs_ready"],
              "RCFE located and confirmed"),
        _step("R&B Needed", "R&B Requested", 7,
              ["Submit R&B request", "Provide financial documentation"],
              ["rb_request_submitted"],
              "Room and Board authorization needed"),
        _step("R&B Requested", "R&B Signed", 14,
              ["Follow up on R&B request", "Coordinate signing"],
              ["rb_approved", "rb_signed"],
              "Room and Board request submitted"),
        _step("R&B Signed", "ILS/RCFE Contract Email Needed", 3,
              ["Process R&B approval"],
              ["rb_processed"],
              "Room and Board approved and signed"),
        _step("ILS/RCFE Contract Email Needed", "ILS/RCFE Contact Email Sent", 2,
              ["Send contract email to ILS and RCFE"],
              ["contract_email_sent"],
              "Contract email to ILS/RCFE needs to go out"),
        _step("ILS/RCFE Contact Email Sent", "ILS/RCFE Connection Confirmed", 5,
              ["Follow up on contract email"],
              ["connection_confirmed"],
              "Waiting on ILS/RCFE to confirm the connection"),
        _step("ILS/RCFE Connection Confirmed", "ILS Sent for Contract", 3,
              ["Initiate ILS contracting"],
              ["ils_contract_initiated"],
              "ILS and RCFE connected"),
        _step("ILS Sent for Contract", "ILS Contracted and Member Moved In", 14,
              ["Complete ILS contracting", "Finalize placement"],
              ["ils_contract_signed", "placement_finalized"],
              "ILS contracting in progress"),
        _step("ILS Contracted and Member Moved In", None, 0,
              ["Archive case", "Update records"],
              [],
              "Case completed successfully"),
    ],
    completion_criteria=["ILS Contracted and Member Moved In", "ILS Contracted (Complete)"],
)

HEALTH_NET_WORKFLOW = WorkflowConfig(
    name="Health Net CalAIM Workflow",
    health_plan=HealthPlan.HEALTH_NET,
    steps=[
        _step("Application Being Reviewed", "Scheduling ISP", 14,
              ["Submit application", "Provide documentation"],
              ["application_approved"],
              "Application under review by Health Net"),
        _step("Scheduling ISP", "ISP Completed", 21,
              ["Schedule ISP meeting", "Coordinate with member"],
              ["isp_completed"],
              "Individual Service Plan meeting scheduling"),
        _step("ISP Completed", "Locating RCFEs", 7,
              ["Review ISP results", "Begin RCFE search"],
              ["isp_approved", "rcfe_search_started"],
              "ISP meeting completed and approved"),
        _step("Locating RCFEs", "Submitted to Health Net", 21,
              ["Find appropriate RCFE", "Prepare submission"],
              ["rcfe_selected", "submission_ready"],
              "Searching for appropriate RCFE placement"),
        _step("Submitted to Health Net", "Authorization Status", 14,
              ["Submit to Health Net", "Follow up on status"],
              ["authorization_received"],
              "Placement submitted to Health Net for authorization"),
        _step("Authorization Status", None, 0,
              ["Process authorization", "Finalize placement"],
              [],
              "Final authorization and placement completion"),
    ],
    completion_criteria=["Authorization Status"],
)

WORKFLOWS: Dict[HealthPlan, WorkflowConfig] = {
    HealthPlan.KAISER: KAISER_WORKFLOW,
    HealthPlan.HEALTH_NET: HEALTH_NET_WORKFLOW,
}

C = Criticality

# Keyed by (health plan, status); a None plan applies to every plan.
STATUS_PROFILES: Dict[Tuple[Optional[HealthPlan], str], StatusProfile] = {
    # Shared statuses
    (None, "Complete"): StatusProfile(
        "Confirm completion and close case", 0, criticality=C.COMPLETION, palette="green", icon="CheckCircle"),
    (None, "Active"): StatusProfile(palette="blue", icon="Target"),
    (None, "Pending"): StatusProfile(palette="yellow", icon="Clock"),
    (None, "On-Hold"): StatusProfile(
        "Review hold status and determine next steps", is_complex=True, palette="orange", icon="Pause"),
    (None, "Non-active"): StatusProfile(
        "Review case status and determine reactivation steps", palette="gray", icon="XCircle"),
    (None, "Denied"): StatusProfile(palette="red", icon="XCircle"),
    (None, "Expired"): StatusProfile(palette="red", icon="AlertTriangle"),

    # Kaiser
    (HealthPlan.KAISER, "Pre-T2038, Compiling Docs"): StatusProfile(
        "Gather required documentation and submit T2038 request", 45, palette="slate"),
    (HealthPlan.KAISER, "T2038, Not Requested, Doc Collection"): StatusProfile(
        "Collect documents needed for the T2038 request", 42, palette="slate"),
    (HealthPlan.KAISER, "T2038 Request Ready"): StatusProfile(
        "Submit T2038 request to Kaiser", 38, palette="emerald", icon="CheckCircle"),
    (HealthPlan.KAISER, "T2038 Requested"): StatusProfile(
        "Follow up on T2038 request status", 35, criticality=C.CRITICAL, palette="purple"),
    (HealthPlan.KAISER, "T2038 Received"): StatusProfile(
        "Review T2038 and initiate first member contact", 30, palette="indigo", icon="CheckCircle"),
    (HealthPlan.KAISER, "T2038 Auth Only Email"): StatusProfile(palette="amber", icon="Mail"),
    (HealthPlan.KAISER, "T2038 email but need auth sheet"): StatusProfile(
        "Request missing authorization sheet from Kaiser", 30, is_complex=True, palette="amber", icon="Mail"),
    (HealthPlan.KAISER, "T2038 received, Need First Contact"): StatusProfile(
        "Schedule and complete initial member contact", 25, criticality=C.IMPORTANT, palette="sky", icon="Phone"),
    (HealthPlan.KAISER, "T2038 received, doc collection"): StatusProfile(
        "Collect additional required documents", 20, palette="sky"),
    (HealthPlan.KAISER, "RN Visit Needed"): StatusProfile(
        "Schedule RN assessment visit", 15, criticality=C.CRITICAL, palette="pink", icon="Calendar"),
    (HealthPlan.KAISER, "RN/MSW Scheduled"): StatusProfile(
        "Confirm RN/MSW appointment and prepare materials", 10, criticality=C.IMPORTANT, palette="pink", icon="Calendar"),
    (HealthPlan.KAISER, "RN Visit Complete"): StatusProfile(
        "Review RN assessment and prepare for tier level request", 8, palette="pink", icon="CheckCircle"),
    (HealthPlan.KAISER, "Tier Level Request Needed"): StatusProfile(
        "Prepare and submit tier level request", 7, palette="rose"),
    (HealthPlan.KAISER, "Tier Level Requested"): StatusProfile(
        "Follow up on tier level determination", 6, criticality=C.CRITICAL, palette="rose"),
    (HealthPlan.KAISER, "Tier Level Received"): StatusProfile(
        "Review tier level and begin RCFE search", 4, palette="rose", icon="CheckCircle"),
    (HealthPlan.KAISER, "Tier Level Appeal"): StatusProfile(
        "Process tier level appeal documentation", 21, is_complex=True, criticality=C.CRITICAL,
        palette="red", icon="AlertTriangle"),
    (HealthPlan.KAISER, "Tier Level Revision Request"): StatusProfile(
        "Submit tier level revision documentation", 14, is_complex=True, palette="red", icon="RefreshCw"),
    (HealthPlan.KAISER, "RCFE Needed"): StatusProfile(
        "Search and contact appropriate RCFE facilities", 21, criticality=C.IMPORTANT, palette="teal", icon="MapPin"),
    (HealthPlan.KAISER, "RCFE_Located"): StatusProfile(
        "Initiate R&B process with selected RCFE", 14, palette="teal", icon="MapPin"),
    (HealthPlan.KAISER, "R&B Needed"): StatusProfile(
        "Submit and prepare R&B documentation", 10, palette="violet"),
    (HealthPlan.KAISER, "R&B Requested"): StatusProfile(
        "Follow up on R&B request and documentation", 7, criticality=C.CRITICAL, palette="violet"),
    (HealthPlan.KAISER, "R&B Signed"): StatusProfile(
        "Process member for ILS contracting", 5, palette="violet", icon="CheckCircle"),
    (HealthPlan.KAISER, "ILS/RCFE Contract Email Needed"): StatusProfile(
        "Send contract email to ILS and RCFE", 5, palette="blue", icon="Mail"),
    (HealthPlan.KAISER, "ILS/RCFE Contact Email Sent"): StatusProfile(
        "Follow up on ILS/RCFE contact email", 4, palette="cyan", icon="Mail"),
    (HealthPlan.KAISER, "ILS/RCFE Connection Confirmed"): StatusProfile(
        "Send member to ILS for contracting", 4, palette="teal", icon="CheckCircle"),
    (HealthPlan.KAISER, "ILS Sent for Contract"): StatusProfile(
        "Complete ILS contracting process", 3, palette="fuchsia"),
    (HealthPlan.KAISER, "ILS Contract Email Needed"): StatusProfile(
        "Send ILS contract email", 4, palette="blue", icon="Mail"),
    (HealthPlan.KAISER, "ILS Contracted and Member Moved In"): StatusProfile(
        "Confirm move-in and close case", 0, criticality=C.COMPLETION, palette="green", icon="CheckCircle"),
    (HealthPlan.KAISER, "ILS Contracted (Complete)"): StatusProfile(
        "Confirm ILS contract completion and finalize", 0, criticality=C.COMPLETION, palette="green",
        icon="CheckCircle"),

    # Health Net
    (HealthPlan.HEALTH_NET, "Application Being Reviewed"): StatusProfile(
        "Follow up on application review status", 30, palette="blue"),
    (HealthPlan.HEALTH_NET, "Scheduling ISP"): StatusProfile(
        "Schedule Individual Service Plan meeting", 21, criticality=C.IMPORTANT, palette="indigo", icon="Calendar"),
    (HealthPlan.HEALTH_NET, "ISP Completed"): StatusProfile(
        "Review ISP results and begin RCFE search", 14, palette="indigo", icon="CheckCircle"),
    (HealthPlan.HEALTH_NET, "Locating RCFEs"): StatusProfile(
        "Search and contact appropriate RCFE facilities", 21, palette="teal", icon="MapPin"),
    (HealthPlan.HEALTH_NET, "Submitted to Health Net"): StatusProfile(
        "Follow up on Health Net authorization", 14, palette="purple"),
    # Final step but still needs the authorization processed, so it ranks as critical
    (HealthPlan.HEALTH_NET, "Authorization Status"): StatusProfile(
        "Process final authorization and complete placement", 7, criticality=C.CRITICAL, palette="green",
        icon="CheckCircle"),
}

DEFAULT_PROFILE = StatusProfile()


def get_status_profile(status: str, health_plan: Optional[HealthPlan] = None) -> StatusProfile:
    """
    Resolve a status profile, preferring the plan-specific entry.

    Plan-specific statuses are also found when the plan is unknown, so a
    record with an unrecognized plan name still gets its status metadata.
    """
    if health_plan is not None and (health_plan, status) in STATUS_PROFILES:
        return STATUS_PROFILES[(health_plan, status)]
    if (None, status) in STATUS_PROFILES:
        return STATUS_PROFILES[(None, status)]
    for (_, known_status), profile in STATUS_PROFILES.items():
        if known_status == status:
            return profile
    return DEFAULT_PROFILE


def default_automation_rules():
    """Rules every engine starts with."""
    return [
        AutomationRule(
            id="kaiser-t2038-auto-advance",
            name="Auto-advance T2038 Requested when received",
            description="Advance from T2038 Requested once the T2038 has been received",
            conditions=RuleConditions(
                status="T2038 Requested", days_in_status=1, custom_conditions=["t2038_received"]
            ),
            actions=RuleActions(
                new_status="T2038 received, Need First Contact",
                add_note="Auto-advanced: T2038 received and processed",
                send_notification=True,
            ),
            health_plan=HealthPlan.KAISER,
        ),
        AutomationRule(
            id="overdue-escalation",
            name="Escalate overdue tasks",
            description="Send notifications for tasks overdue by 3+ days",
            conditions=RuleConditions(status="*", days_in_status=-3),
            actions=RuleActions(
                new_status="",  # status unchanged
                add_note="Task is overdue - escalation triggered",
                send_notification=True,
                schedule_reminder=1,
            ),
        ),
        AutomationRule(
            id="rn-visit-auto-schedule",
            name="Auto-schedule RN visits",
            description="Advance to RN/MSW Scheduled when the visit is booked",
            conditions=RuleConditions(
                status="RN Visit Needed", days_in_status=1, custom_conditions=["rn_visit_scheduled"]
            ),
            actions=RuleActions(
                new_status="RN/MSW Scheduled",
                add_note="Auto-advanced: RN visit scheduled",
                send_notification=True,
            ),
            health_plan=HealthPlan.KAISER,
        ),
    ]
