from __future__ import annotations

from sqlalchemy import Boolean, Column, Float, Index, Integer, String, Text, true

from db import Base


class IdCounter(Base):
    __tablename__ = "id_counters"

    key = Column(String, primary_key=True)
    nextValue = Column(Integer, nullable=False, default=1)


class User(Base):
    __tablename__ = "users"

    userId = Column(String, primary_key=True)
    email = Column(String, nullable=False, unique=True, index=True)
    fullName = Column(Text, nullable=False, default="")
    passwordHash = Column(Text, nullable=False, default="")
    role = Column(String, nullable=False, index=True)  # ADMIN|COMPANY|EMPLOYEE
    # companyId for COMPANY users, employeeId for EMPLOYEE users.
    profileId = Column(String, nullable=False, default="", index=True)
    status = Column(String, nullable=False, default="ACTIVE", index=True)  # ACTIVE|SUSPENDED
    suspensionReason = Column(Text, nullable=False, default="")
    authVersion = Column(Integer, nullable=False, default=0)
    lastLoginAt = Column(Text, nullable=False, default="")
    createdAt = Column(Text, nullable=False, default="")
    createdBy = Column(String, nullable=False, default="")
    updatedAt = Column(Text, nullable=False, default="")
    updatedBy = Column(String, nullable=False, default="")


class Session(Base):
    __tablename__ = "sessions"

    sessionId = Column(String, primary_key=True)
    tokenHash = Column(String, nullable=False, unique=True, index=True)
    tokenPrefix = Column(String, nullable=False, default="", index=True)
    userId = Column(String, nullable=False, default="", index=True)
    email = Column(String, nullable=False, default="")
    role = Column(String, nullable=False, default="", index=True)
    authVersion = Column(Integer, nullable=False, default=0)
    issuedAt = Column(Text, nullable=False, default="")
    expiresAt = Column(Text, nullable=False, default="")
    lastSeenAt = Column(Text, nullable=False, default="")
    revokedAt = Column(Text, nullable=False, default="")
    revokedBy = Column(String, nullable=False, default="")


class Company(Base):
    __tablename__ = "companies"

    companyId = Column(String, primary_key=True)  # CMP-YYYY-xxxxx
    companyName = Column(Text, nullable=False, default="")
    industry = Column(Text, nullable=False, default="")
    userId = Column(String, nullable=False, default="", index=True)
    verified = Column(Boolean, nullable=False, default=False)
    createdAt = Column(Text, nullable=False, default="")
    updatedAt = Column(Text, nullable=False, default="")


class Employee(Base):
    __tablename__ = "employees"

    employeeId = Column(String, primary_key=True)  # EMP-YYYY-xxxxx
    firstName = Column(Text, nullable=False, default="")
    lastName = Column(Text, nullable=False, default="")
    dateOfBirth = Column(String, nullable=False, default="")  # YYYY-MM-DD, immutable
    email = Column(String, nullable=False, default="", index=True)
    currentDesignation = Column(Text, nullable=False, default="")
    # Name + DOB identity key (never store raw identifiers in the hash column).
    identityHash = Column(String, nullable=False, default="", index=True)
    createdBy = Column(String, nullable=False, default="", index=True)  # companyId

    # Derived; written only by services.score_service.
    overallScore = Column(Integer, nullable=False, default=0)
    scoreState = Column(String, nullable=False, default="UNSCORED")  # UNSCORED|SCORED
    approvedReviewCount = Column(Integer, nullable=False, default=0)
    verificationPercentage = Column(Integer, nullable=False, default=0)
    documentsVerified = Column(Integer, nullable=False, default=0)
    verified = Column(Boolean, nullable=False, default=False, index=True)

    isActive = Column(Boolean, nullable=False, default=True, index=True)
    deletedAt = Column(Text, nullable=False, default="")
    createdAt = Column(Text, nullable=False, default="")
    updatedAt = Column(Text, nullable=False, default="")
    updatedBy = Column(String, nullable=False, default="")


class Review(Base):
    """
    A company's review of one employee.

    Status flow: pending -> approved/rejected. Only approved + active reviews feed the score.
    At most one active review per (companyId, employeeId), enforced by uq_reviews_active_pair.
    """

    __tablename__ = "reviews"

    reviewId = Column(String, primary_key=True)  # REV-YYYY-xxxxx
    companyId = Column(String, nullable=False, index=True)
    employeeId = Column(String, nullable=False, index=True)

    # 1-10 each
    workQuality = Column(Integer, nullable=False, default=1)
    punctuality = Column(Integer, nullable=False, default=1)
    behavior = Column(Integer, nullable=False, default=1)
    teamwork = Column(Integer, nullable=False, default=1)
    communication = Column(Integer, nullable=False, default=1)
    technicalSkills = Column(Integer, nullable=False, default=1)
    problemSolving = Column(Integer, nullable=False, default=1)
    reliability = Column(Integer, nullable=False, default=1)
    averageRating = Column(Float, nullable=False, default=1.0)

    designation = Column(Text, nullable=False, default="")
    department = Column(Text, nullable=False, default="")
    startDate = Column(String, nullable=False, default="")  # YYYY-MM-DD
    endDate = Column(String, nullable=False, default="")  # YYYY-MM-DD or "" (still employed)
    employmentType = Column(String, nullable=False, default="")
    reasonForLeaving = Column(Text, nullable=False, default="")

    comment = Column(Text, nullable=False, default="")
    wouldRehire = Column(Boolean, nullable=False, default=False)
    tagsJson = Column(Text, nullable=False, default="[]")

    moderationStatus = Column(String, nullable=False, default="pending", index=True)
    moderatedBy = Column(String, nullable=False, default="")
    moderatedAt = Column(Text, nullable=False, default="")
    moderationNote = Column(Text, nullable=False, default="")

    isActive = Column(Boolean, nullable=False, default=True, index=True)
    deletedAt = Column(Text, nullable=False, default="")
    editHistoryJson = Column(Text, nullable=False, default="[]")

    createdAt = Column(Text, nullable=False, default="", index=True)
    createdBy = Column(String, nullable=False, default="")
    updatedAt = Column(Text, nullable=False, default="")


Index(
    "uq_reviews_active_pair",
    Review.companyId,
    Review.employeeId,
    unique=True,
    sqlite_where=Review.isActive == true(),
    postgresql_where=Review.isActive == true(),
)
Index("ix_reviews_score_lookup", Review.employeeId, Review.isActive, Review.moderationStatus)


class Document(Base):
    __tablename__ = "documents"

    documentId = Column(String, primary_key=True)  # DOC-YYYY-xxxxx
    employeeId = Column(String, nullable=False, index=True)
    documentType = Column(String, nullable=False, default="", index=True)
    documentNumber = Column(String, nullable=False, default="")
    fileName = Column(Text, nullable=False, default="")
    storageKey = Column(String, nullable=False, default="", index=True)
    filePath = Column(Text, nullable=False, default="")
    fileSize = Column(Integer, nullable=False, default=0)
    mimeType = Column(String, nullable=False, default="")

    verificationStatus = Column(String, nullable=False, default="pending", index=True)
    verificationMethod = Column(String, nullable=False, default="")  # AUTO|MANUAL
    verifiedBy = Column(String, nullable=False, default="")
    verifiedAt = Column(Text, nullable=False, default="")
    rejectionReason = Column(Text, nullable=False, default="")
    autoVerificationJson = Column(Text, nullable=False, default="")

    uploadedBy = Column(String, nullable=False, default="", index=True)
    uploadedAt = Column(Text, nullable=False, default="", index=True)


class AuditLog(Base):
    __tablename__ = "audit_log"

    logId = Column(String, primary_key=True)
    entityType = Column(String, nullable=False, default="", index=True)
    entityId = Column(String, nullable=False, default="", index=True)
    action = Column(String, nullable=False, default="", index=True)
    status = Column(String, nullable=False, default="success", index=True)
    remark = Column(Text, nullable=False, default="")
    actorUserId = Column(String, nullable=False, default="", index=True)
    actorRole = Column(String, nullable=False, default="", index=True)
    at = Column(Text, nullable=False, default="", index=True)
    correlationId = Column(String, nullable=False, default="", index=True)
    metaJson = Column(Text, nullable=False, default="")
