"""
Scan Grader Services
====================

Business logic for a scanned batch.

Services:
- identification_stage: auto-assign students from codes and names
- analysis_stage: grade each submission with the vision service
- linking: merge continuation pages into a primary submission
- grade_resolution: the effective grade of a submission
- aggregation: class summary and differentiation groups
- bulk_adjust: teacher-confirmed grade changes for a group
- gradebook: grade history persistence
- remediation: differentiated follow-up pushes
- scan_clients: Claude vision identification and analysis
"""

# Services are imported directly when needed to avoid circular imports
# Example: from scangrade.services.aggregation import batch_summary

__all__ = [
    'identification_stage',
    'analysis_stage',
    'linking',
    'grade_resolution',
    'aggregation',
    'bulk_adjust',
    'gradebook',
    'remediation',
    'scan_clients',
]
