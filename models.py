from datetime import datetime, timezone

from sqlalchemy import event

from extensions import db
from utils.errors import InvalidStateError


def _utcnow():
    return datetime.now(timezone.utc)


class User(db.Model):
    __tablename__ = 'users'

    id = db.Column(db.Integer, primary_key=True)
    username = db.Column(db.String(64), nullable=False, unique=True)
    display_name = db.Column(db.String(150), nullable=False)
    email = db.Column(db.String(190))
    # super_admin / bursary / staff; assigned by a super_admin, read on every call
    role = db.Column(db.String(32), nullable=False, default='staff')
    is_active = db.Column(db.Boolean, nullable=False, default=True)
    created_at = db.Column(db.DateTime(timezone=True), default=_utcnow)

    def __repr__(self):
        return f'<User {self.username} ({self.role})>'


class AcademicSession(db.Model):
    __tablename__ = 'academic_sessions'

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(100), nullable=False)
    start_year = db.Column(db.Integer, nullable=False)
    end_year = db.Column(db.Integer, nullable=False)
    is_active = db.Column(db.Boolean, nullable=False, default=False)
    created_at = db.Column(db.DateTime(timezone=True), default=_utcnow)

    terms = db.relationship('Term', backref='session', cascade="all, delete-orphan")

    def __repr__(self):
        return f'<AcademicSession {self.name}>'


class Term(db.Model):
    __tablename__ = 'terms'
    __table_args__ = (
        db.UniqueConstraint('session_id', 'ordinal', name='uq_terms_session_ordinal'),
    )

    id = db.Column(db.Integer, primary_key=True)
    session_id = db.Column(db.Integer, db.ForeignKey('academic_sessions.id'), nullable=False)
    # '1st' / '2nd' / '3rd'
    ordinal = db.Column(db.String(3), nullable=False)
    is_active = db.Column(db.Boolean, nullable=False, default=False)
    created_at = db.Column(db.DateTime(timezone=True), default=_utcnow)

    fees = db.relationship('FeeScheduleRow', backref='term', cascade="all, delete-orphan")
    payments = db.relationship('Payment', backref='term', cascade="all, delete-orphan")
    fee_changes = db.relationship('FeeChangeRequest', backref='term', cascade="all, delete-orphan")

    def __repr__(self):
        return f'<Term {self.ordinal} session={self.session_id}>'


class FeeScheduleRow(db.Model):
    __tablename__ = 'term_fees'
    __table_args__ = (
        db.UniqueConstraint('term_id', 'class_name', name='uq_term_fees_term_class'),
    )

    id = db.Column(db.Integer, primary_key=True)
    term_id = db.Column(db.Integer, db.ForeignKey('terms.id'), nullable=False)
    class_name = db.Column(db.String(32), nullable=False)
    new_intake_fee = db.Column(db.Numeric(12, 2), nullable=False, default=0)
    returning_fee = db.Column(db.Numeric(12, 2), nullable=False, default=0)

    def __repr__(self):
        return f'<FeeScheduleRow term={self.term_id} {self.class_name}>'


class Student(db.Model):
    __tablename__ = 'students'

    id = db.Column(db.Integer, primary_key=True)
    reg_number = db.Column(db.String(32), nullable=False, unique=True)
    first_name = db.Column(db.String(100), nullable=False)
    middle_name = db.Column(db.String(100))
    surname = db.Column(db.String(100), nullable=False)
    section = db.Column(db.String(16), nullable=False)
    class_name = db.Column(db.String(32), nullable=False, index=True)
    # Class held before the last promotion
    previous_class = db.Column(db.String(32))
    parent_phone = db.Column(db.String(20))
    # Two-digit entry year, part of the registration number scope
    year_of_entry = db.Column(db.String(2), nullable=False)
    is_new_intake = db.Column(db.Boolean, nullable=False, default=True)
    created_at = db.Column(db.DateTime(timezone=True), default=_utcnow)

    # Soft delete (graduation uses the same flag)
    is_archived = db.Column(db.Boolean, nullable=False, default=False)
    archived_at = db.Column(db.DateTime(timezone=True))
    archived_by = db.Column(db.Integer, db.ForeignKey('users.id'))
    archive_reason = db.Column(db.String(255))

    payments = db.relationship('Payment', backref='student', cascade="all, delete-orphan")

    @property
    def full_name(self):
        parts = [self.first_name, self.middle_name, self.surname]
        return " ".join(p for p in parts if p)

    def __repr__(self):
        return f'<Student {self.full_name} ({self.reg_number})>'


class Payment(db.Model):
    __tablename__ = 'payments'

    id = db.Column(db.Integer, primary_key=True)
    transaction_id = db.Column(db.String(40), nullable=False, unique=True)
    student_id = db.Column(db.Integer, db.ForeignKey('students.id'), nullable=False, index=True)
    session_id = db.Column(db.Integer, db.ForeignKey('academic_sessions.id'), nullable=False)
    term_id = db.Column(db.Integer, db.ForeignKey('terms.id'), nullable=False, index=True)
    amount = db.Column(db.Numeric(12, 2), nullable=False)
    # Snapshots taken when the payment was submitted
    fee_payable = db.Column(db.Numeric(12, 2), nullable=False, default=0)
    outstanding_balance = db.Column(db.Numeric(12, 2), nullable=False, default=0)
    method = db.Column(db.String(16), nullable=False)
    received_by = db.Column(db.String(150), nullable=False)
    received_by_id = db.Column(db.Integer, db.ForeignKey('users.id'))
    notes = db.Column(db.Text)
    created_at = db.Column(db.DateTime(timezone=True), default=_utcnow)

    approval_status = db.Column(db.String(16), nullable=False, default='pending', index=True)
    approved_by = db.Column(db.Integer, db.ForeignKey('users.id'))
    approved_at = db.Column(db.DateTime(timezone=True))
    reviewer_notes = db.Column(db.Text)

    is_voided = db.Column(db.Boolean, nullable=False, default=False)
    voided_at = db.Column(db.DateTime(timezone=True))
    voided_by = db.Column(db.Integer, db.ForeignKey('users.id'))

    audit_entries = db.relationship(
        'PaymentAudit', backref='payment', order_by='PaymentAudit.id', passive_deletes='all'
    )

    def __repr__(self):
        return f'<Payment {self.transaction_id} StudentID={self.student_id} Paid={self.amount}>'


class PaymentAudit(db.Model):
    __tablename__ = 'payment_audit'

    id = db.Column(db.Integer, primary_key=True)
    payment_id = db.Column(db.Integer, db.ForeignKey('payments.id'), nullable=False, index=True)
    # 'edited' / 'voided'
    action = db.Column(db.String(16), nullable=False)
    previous_amount = db.Column(db.Numeric(12, 2))
    new_amount = db.Column(db.Numeric(12, 2))
    previous_method = db.Column(db.String(16))
    new_method = db.Column(db.String(16))
    reason = db.Column(db.Text, nullable=False)
    performed_by = db.Column(db.Integer, db.ForeignKey('users.id'), nullable=False)
    created_at = db.Column(db.DateTime(timezone=True), default=_utcnow)

    def __repr__(self):
        return f'<PaymentAudit {self.action} payment={self.payment_id}>'


@event.listens_for(PaymentAudit, "before_update")
def _refuse_audit_update(mapper, connection, target):
    raise InvalidStateError(
        "Payment audit entries are append-only",
        entity="payment_audit",
        entity_id=target.id,
    )


@event.listens_for(PaymentAudit, "before_delete")
def _refuse_audit_delete(mapper, connection, target):
    raise InvalidStateError(
        "Payment audit entries cannot be deleted",
        entity="payment_audit",
        entity_id=target.id,
    )


class FeeChangeRequest(db.Model):
    __tablename__ = 'fee_changes'

    id = db.Column(db.Integer, primary_key=True)
    term_id = db.Column(db.Integer, db.ForeignKey('terms.id'), nullable=False, index=True)
    class_name = db.Column(db.String(32), nullable=False)
    new_intake_fee = db.Column(db.Numeric(12, 2), nullable=False)
    returning_fee = db.Column(db.Numeric(12, 2), nullable=False)
    status = db.Column(db.String(16), nullable=False, default='pending')
    requested_by = db.Column(db.Integer, db.ForeignKey('users.id'), nullable=False)
    approved_by = db.Column(db.Integer, db.ForeignKey('users.id'))
    decided_at = db.Column(db.DateTime(timezone=True))
    created_at = db.Column(db.DateTime(timezone=True), default=_utcnow)

    def __repr__(self):
        return f'<FeeChangeRequest {self.class_name} term={self.term_id} {self.status}>'
