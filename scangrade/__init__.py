"""
Scan Grader Package
===================

Batch grading of scanned handwritten student work.

Structure:
- batch_queue.py: Queue items, result models and the batch queue
- roster.py: Class roster and student name/code matching
- services/: Stages, grade resolution, reports and finalization
- routes/: API route blueprints
- session.py: One batch with its services and background stage thread
- config.py: Configuration management
"""

from .config import Config
from .batch_queue import BatchQueue
from .session import BatchSession

__version__ = "1.0.0"

__all__ = ['Config', 'BatchQueue', 'BatchSession']
