"""GDPRFlow compliance engine.

Components (leaves first):
- consent: per-purpose consent ledger
- retention: time-driven retention policy executor
- dpia: data protection impact assessment scorer
- dashboard: compliance score aggregator over the three above
- subject_rights: data subject request portal on top of consent and retention

Services are constructed with an injected SQLAlchemy session and audit logger:

    from gdprflow.audit.service import AuditLogger
    from gdprflow.consent.service import ConsentService

    consent = ConsentService(db=session, audit=AuditLogger(session))
"""

__version__ = "0.1.0"
