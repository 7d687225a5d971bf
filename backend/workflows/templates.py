# backend/workflows/templates.py
# Built-in workflow templates (trigger -> conditions -> actions)

import copy
from typing import Dict, List, Optional


def _campaign_action(list_placeholder: str, **extra) -> Dict:
    config = {
        "list_key": f"{{{{{list_placeholder}}}}}",
        "email": "{{Email}}",
        "first_name": "{{First_Name}}",
        "last_name": "{{Last_Name}}"
    }
    config.update(extra)
    return {"type": "add_to_campaign", "config": config}


EMAIL_PRESENT = [{"field": "Email", "operator": "is_not_empty"}]


WORKFLOW_TEMPLATES = {
    "new-lead-to-nurture-campaign": {
        "name": "New Lead → Nurture Campaign",
        "description": "Automatically add new leads to nurture email campaign list",
        "trigger_type": "crm_record_created",
        "trigger_config": {
            "module": "Leads",
            "conditions": [{"field": "Lead_Status", "operator": "equals", "value": "New"}]
        },
        "conditions": EMAIL_PRESENT,
        "actions": [_campaign_action("NURTURE_LIST_KEY")],
        "status": "paused"
    },

    "qualified-lead-to-sales-campaign": {
        "name": "Qualified Lead → Sales Campaign",
        "description": "Add qualified leads to sales follow-up campaign",
        "trigger_type": "crm_field_changed",
        "trigger_config": {
            "module": "Leads",
            "field": "Lead_Status",
            "conditions": [{"field": "Lead_Status", "operator": "equals", "value": "Qualified"}]
        },
        "conditions": EMAIL_PRESENT,
        "actions": [
            _campaign_action("SALES_LIST_KEY"),
            {
                "type": "update_crm_field",
                "config": {
                    "module": "Leads",
                    "record_id": "{{id}}",
                    "field": "Description",
                    "value": "Added to sales campaign on {{NOW}}"
                }
            }
        ],
        "status": "paused"
    },

    "contact-created-welcome-email": {
        "name": "New Contact → Welcome Email",
        "description": "Send welcome email campaign when new contact is created",
        "trigger_type": "crm_record_created",
        "trigger_config": {"module": "Contacts"},
        "conditions": EMAIL_PRESENT,
        "actions": [_campaign_action("WELCOME_LIST_KEY")],
        "status": "paused"
    },

    "lead-status-won-to-customer-campaign": {
        "name": "Lead Won → Customer Campaign",
        "description": "Move won leads to customer onboarding campaign",
        "trigger_type": "crm_field_changed",
        "trigger_config": {
            "module": "Leads",
            "field": "Lead_Status",
            "conditions": [{"field": "Lead_Status", "operator": "equals", "value": "Closed-Won"}]
        },
        "conditions": EMAIL_PRESENT,
        "actions": [
            _campaign_action("CUSTOMER_ONBOARDING_LIST_KEY"),
            {
                "type": "create_crm_record",
                "config": {
                    "module": "Contacts",
                    "data": {
                        "First_Name": "{{First_Name}}",
                        "Last_Name": "{{Last_Name}}",
                        "Email": "{{Email}}",
                        "Phone": "{{Phone}}",
                        "Lead_Source": "Converted from Lead"
                    }
                }
            }
        ],
        "status": "paused"
    },

    "high-value-lead-notification": {
        "name": "High Value Lead → Notification",
        "description": "Create task and send notification for high value leads",
        "trigger_type": "crm_record_created",
        "trigger_config": {
            "module": "Leads",
            "conditions": [{"field": "Annual_Revenue", "operator": "greater_than", "value": 100000}]
        },
        "conditions": [],
        "actions": [
            {
                "type": "update_crm_field",
                "config": {"module": "Leads", "record_id": "{{id}}", "field": "Rating", "value": "Hot"}
            },
            _campaign_action("VIP_LIST_KEY", additional_fields={"Annual Revenue": "{{Annual_Revenue}}"})
        ],
        "status": "paused"
    },

    "monthly-newsletter-blast": {
        "name": "Monthly Newsletter Blast",
        "description": "Manual trigger to send monthly newsletter",
        "trigger_type": "manual",
        "trigger_config": {},
        "conditions": [],
        "actions": [{"type": "send_email", "config": {"campaign_key": "{{NEWSLETTER_CAMPAIGN_KEY}}"}}],
        "status": "paused"
    },

    "sync-crm-to-campaign-list": {
        "name": "Sync CRM to Campaign List",
        "description": "Manual bulk sync from CRM module to campaign list",
        "trigger_type": "manual",
        "trigger_config": {},
        "conditions": [],
        "actions": [
            {
                "type": "http_request",
                "config": {
                    "url": "{{API_BASE_URL}}/commands/sync-to-campaign",
                    "method": "POST",
                    "headers": {"Content-Type": "application/json"},
                    "body": {
                        "crm_module": "{{CRM_MODULE}}",
                        "list_key": "{{LIST_KEY}}",
                        "filters": {},
                        "limit": 500
                    }
                }
            }
        ],
        "status": "paused"
    }
}


def get_template_names() -> List[str]:
    return list(WORKFLOW_TEMPLATES.keys())


def get_template(name: str) -> Optional[Dict]:
    """Deep copy, safe to modify"""
    template = WORKFLOW_TEMPLATES.get(name)
    return copy.deepcopy(template) if template else None


def get_all_templates() -> List[Dict]:
    return [{"name": name, "template": get_template(name)} for name in WORKFLOW_TEMPLATES]
