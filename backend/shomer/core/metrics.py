"""Prometheus metrics for the application"""
from prometheus_client import Counter, Gauge, REGISTRY

# Re-importing this module (tests, reloads) must not re-register collectors
try:
    scheduler_sweeps_counter = Counter(
        'shomer_scheduler_sweeps_total',
        'Total number of scheduler sweeps over eligible users',
        ['status']
    )
except ValueError:
    scheduler_sweeps_counter = REGISTRY._names_to_collectors.get('shomer_scheduler_sweeps_total')

try:
    armed_jobs_gauge = Gauge(
        'shomer_scheduler_armed_jobs',
        'Number of armed hide/restore timers',
        ['kind']
    )
except ValueError:
    armed_jobs_gauge = REGISTRY._names_to_collectors.get('shomer_scheduler_armed_jobs')

try:
    visibility_passes_counter = Counter(
        'shomer_visibility_passes_total',
        'Total number of hide/restore passes',
        ['action', 'trigger', 'status']
    )
except ValueError:
    visibility_passes_counter = REGISTRY._names_to_collectors.get('shomer_visibility_passes_total')

try:
    items_changed_counter = Counter(
        'shomer_visibility_items_changed_total',
        'Total number of content items whose visibility was changed',
        ['platform', 'action']
    )
except ValueError:
    items_changed_counter = REGISTRY._names_to_collectors.get('shomer_visibility_items_changed_total')

try:
    item_failures_counter = Counter(
        'shomer_visibility_item_failures_total',
        'Total number of failed visibility changes',
        ['platform', 'action']
    )
except ValueError:
    item_failures_counter = REGISTRY._names_to_collectors.get('shomer_visibility_item_failures_total')

try:
    platform_failures_counter = Counter(
        'shomer_visibility_platform_failures_total',
        'Platform passes that failed as a whole (authentication, listing, timeout)',
        ['platform', 'action']
    )
except ValueError:
    platform_failures_counter = REGISTRY._names_to_collectors.get('shomer_visibility_platform_failures_total')
