"""
UAT Routing Service.

This package turns an Azure DevOps UAT work item into a routing
recommendation by prompting an Azure OpenAI deployment and normalizing
its reply into a fixed routing schema.
"""

__version__ = "1.0.0"
__author__ = "Automation Engineer"
