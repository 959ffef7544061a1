"""
Canned results returned when a request sets ``use_mock_data``.
Used for demos and frontend work without a Gemini key or quota.
"""
from typing import List

from models import (
    ActionItem, ActionPlan, Recommendation, RecommendationResponse, RiskItem, TimelineEvent,
)


def mock_recommendations() -> RecommendationResponse:
    return RecommendationResponse(
        immediate_actions=[
            Recommendation(
                action="Implement callback option",
                rationale="Reduces customer frustration during peak times",
                expected_impact="15% reduction in call abandonment rate",
                priority=5,
            ),
            Recommendation(
                action="Add self-service order tracking",
                rationale="Customers frequently check order status",
                expected_impact="25% reduction in status-related calls",
                priority=4,
            ),
            Recommendation(
                action="Improve post-purchase email communication",
                rationale="Customers need clearer delivery information",
                expected_impact="10% reduction in delivery-related inquiries",
                priority=3,
            ),
        ],
        implementation_notes=[
            "Focus on mobile-friendly interfaces",
            "Ensure integration with existing CRM system",
            "Provide comprehensive training for support staff",
        ],
        success_metrics=[
            "Reduction in call volume for routine inquiries",
            "Improvement in customer satisfaction scores",
            "Increase in first-call resolution rate",
        ],
    )


def mock_timeline() -> List[TimelineEvent]:
    return [
        TimelineEvent(
            phase="Phase 1: Initial Implementation",
            description="Set up the basic infrastructure for the callback system",
            duration="2 weeks",
            milestones=["Backend API setup", "Database schema design", "Basic UI mockups"],
        ),
        TimelineEvent(
            phase="Phase 2: Development",
            description="Develop the callback functionality and integrate with existing systems",
            duration="4 weeks",
            milestones=["Backend development", "Frontend integration", "Unit testing"],
        ),
        TimelineEvent(
            phase="Phase 3: Testing and Deployment",
            description="Test the system and roll out to production",
            duration="2 weeks",
            milestones=["QA testing", "User acceptance testing", "Production deployment"],
        ),
    ]


def mock_action_plan() -> ActionPlan:
    return ActionPlan(
        goals=[
            "Improve customer retention rates",
            "Reduce call center wait times",
            "Increase customer satisfaction scores",
        ],
        immediate_actions=[
            ActionItem(
                action="Implement callback option",
                description="Add callback feature for customers on hold",
                priority=5,
                estimated_effort="2 weeks",
                responsible_role="Engineering",
            ),
            ActionItem(
                action="Train agents on new retention offers",
                description="Provide comprehensive training on new retention policies",
                priority=4,
                estimated_effort="1 week",
                responsible_role="Training",
            ),
        ],
        short_term_actions=[
            ActionItem(
                action="Develop self-service order tracking",
                description="Create web and mobile interfaces for order status tracking",
                priority=4,
                estimated_effort="1 month",
                dependencies=["Upgrade backend API"],
                responsible_role="Engineering",
            ),
        ],
        long_term_actions=[
            ActionItem(
                action="Implement AI-powered assistance",
                description="Develop AI chatbot for common inquiries",
                priority=3,
                estimated_effort="3 months",
                responsible_role="Engineering",
            ),
        ],
        responsible_parties=["Customer Support", "Engineering", "Training", "Marketing"],
        timeline=[
            TimelineEvent(
                phase="Phase 1: Immediate Improvements",
                description="Focus on quick wins with high impact",
                duration="1 month",
                milestones=["Callback feature launch", "Agent training complete"],
            ),
            TimelineEvent(
                phase="Phase 2: System Enhancements",
                description="Roll out system improvements and self-service features",
                duration="2 months",
                milestones=["Self-service tracking launch", "Knowledge base update"],
            ),
        ],
        success_metrics=[
            "15% reduction in call abandonment rate",
            "10% increase in customer satisfaction scores",
            "20% reduction in routine inquiry calls",
        ],
        risks_mitigations=[
            RiskItem(
                risk="Technical integration issues",
                impact="High",
                probability="Medium",
                mitigation_plan="Comprehensive testing and phased rollout",
            ),
            RiskItem(
                risk="Agent adoption resistance",
                impact="Medium",
                probability="Low",
                mitigation_plan="Early involvement and feedback collection",
            ),
        ],
    )
