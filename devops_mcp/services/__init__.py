from .azure_devops import AzureDevOpsClient

__all__ = ["AzureDevOpsClient"]
