# eshaafi/compliance_logger.py
import logging
from typing import Optional, Union

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from eshaafi import models


class ComplianceLogger:
	"""Audit trail for booking engine mutations.

	Entries are staged on the caller's session, so an entry is committed
	together with the change it describes and disappears with it on rollback.
	"""

	def __init__(self):
		self.logger = logging.getLogger('compliance')

	def record(
		self,
		db: Session,
		action: Union[models.AuditAction, str],
		category: str,
		resource=None,
		actor_id: Optional[int] = None,
		details: Optional[str] = None,
		severity: str = 'INFO',
		resource_type: Optional[str] = None,
		resource_id: Optional[int] = None,
	) -> Optional[models.AuditLog]:
		"""Stage one AuditLog row. resource, when given, names the row being touched."""
		if resource is not None:
			resource_type = resource_type or type(resource).__name__
			if resource_id is None:
				resource_id = resource.id
		action = models.AuditAction(action)

		try:
			entry = models.AuditLog(
				user_id=actor_id,
				action=action,
				category=category,
				severity=severity,
				resource_type=resource_type,
				resource_id=resource_id,
				details=details,
			)
			db.add(entry)
		except SQLAlchemyError as e:
			# The audited change itself goes ahead.
			self.logger.error(f"Could not stage audit entry for {resource_type}:{resource_id}: {e}")
			return None

		self.logger.info(f"[{category}] {action.value} {resource_type}:{resource_id} by user {actor_id} - {details}")
		return entry


compliance_logger = ComplianceLogger()
