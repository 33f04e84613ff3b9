"""Atlassian Connect add-on hosting: descriptor, JWT, tenants, webhooks."""

from confluence_connect.addon.addon import ADDON_MOUNT_PATH, AddonCredentials, AtlassianAddon
from confluence_connect.addon.descriptor import AddonDescriptor
from confluence_connect.addon.store import TenantStore, create_store

__all__ = [
    "ADDON_MOUNT_PATH",
    "AddonCredentials",
    "AtlassianAddon",
    "AddonDescriptor",
    "TenantStore",
    "create_store",
]
