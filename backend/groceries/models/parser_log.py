"""
ParserLog database model: audit trail of calls to the external grocery parser.
"""

from datetime import datetime

from sqlalchemy import Boolean, Column, DateTime, Index, Integer, String, Text

from groceries.database import Base


class ParserLog(Base):
    __tablename__ = "parser_logs"
    __table_args__ = (
        Index("idx_parser_log_created", "created_at"),
        Index("idx_parser_log_success", "success"),
    )

    id = Column(Integer, primary_key=True, index=True)
    request_type = Column(String(50), nullable=False)
    input_text = Column(Text, nullable=True)
    success = Column(Boolean, nullable=False)
    error_message = Column(String(1000), nullable=True)
    error_type = Column(String(100), nullable=True)
    input_tokens = Column(Integer, nullable=False, default=0)
    output_tokens = Column(Integer, nullable=False, default=0)
    response_time_ms = Column(Integer, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
