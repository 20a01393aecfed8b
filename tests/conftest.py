"""
Pytest configuration and global fixtures.

This module provides shared fixtures used across all tests.
"""

from collections.abc import Callable, Generator
from datetime import date
from decimal import Decimal

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker

from clubpay.payment.domain.enums import EntityType
from clubpay.payment.domain.models import Member, Obligation, Payer
from clubpay.payment.infrastructure.store import InMemoryStore
from clubpay.storage.database import models  # noqa: F401
from clubpay.storage.database.base import Base
from clubpay.utils.config import Settings

CAMT_NS = "urn:iso:std:iso:20022:tech:xsd:camt.052.001.02"


@pytest.fixture
def test_settings() -> Settings:
    """Settings isolated from the environment and any .env file."""
    return Settings(
        _env_file=None,
        database_url="sqlite:///:memory:",
        default_currency="EUR",
        amount_epsilon=Decimal("0.01"),
        lookahead_days=30,
        max_generations_per_run=12,
        min_name_length=3,
        unknown_payer_name="Unknown payer",
        club_name="Test Club",
    )


@pytest.fixture(scope="function")
def db_engine():
    """Create an in-memory SQLite database engine for testing."""
    engine = create_engine("sqlite:///:memory:", echo=False)
    Base.metadata.create_all(engine)
    yield engine
    Base.metadata.drop_all(engine)
    engine.dispose()


@pytest.fixture
def session_factory(db_engine) -> sessionmaker[Session]:
    return sessionmaker(bind=db_engine, autocommit=False, autoflush=False)


@pytest.fixture
def store() -> InMemoryStore:
    """Empty store without a persistence backend."""
    return InMemoryStore()


@pytest.fixture
def payers() -> list[Payer]:
    return [
        Payer(
            id="payer-ana",
            first_name="Ana",
            last_name="Novak",
            email="ana.novak@example.com",
            account_id="SI56 1910 0000 0123 438",
        ),
        Payer(id="payer-marko", first_name="Marko", last_name="Kovač", email=""),
        Payer(
            id="payer-petra",
            first_name="Petra",
            last_name="Zupan",
            email="petra.zupan@example.com",
        ),
    ]


@pytest.fixture
def members() -> list[Member]:
    return [
        Member(id="member-eva", first_name="Eva", last_name="Novak", payer_ids=["payer-ana"]),
        Member(id="member-luka", first_name="Luka", last_name="Kovač", payer_ids=["payer-marko"]),
        Member(
            id="member-tim",
            first_name="Tim",
            last_name="Zupan",
            payer_ids=["payer-petra", "payer-ana"],
        ),
        Member(id="member-nina", first_name="Nina", last_name="Horvat", payer_ids=[]),
    ]


@pytest.fixture
def seeded_store(store: InMemoryStore, payers, members) -> InMemoryStore:
    """Store holding the sample payers and members."""
    store.seed(EntityType.PAYERS, payers)
    store.seed(EntityType.MEMBERS, members)
    return store


@pytest.fixture
def make_obligation(seeded_store: InMemoryStore) -> Callable[..., Obligation]:
    """Factory creating obligations in the seeded store."""

    def _make(
        amount: str,
        due_date: date | None = None,
        member_id: str = "member-eva",
        title: str = "Training fee",
        **kwargs,
    ) -> Obligation:
        return seeded_store.create(
            EntityType.OBLIGATIONS,
            Obligation(
                member_id=member_id,
                title=title,
                amount=Decimal(amount),
                due_date=due_date,
                cost_type=kwargs.pop("cost_type", "Training"),
                **kwargs,
            ),
        )

    return _make


def camt_entry(
    amount: str = "50.00",
    *,
    ref: str | None = "REF-001",
    tx_id: str | None = None,
    indicator: str = "CRDT",
    currency: str | None = "EUR",
    booking_date: str = "2024-03-05",
    value_date: str = "2024-03-05",
    payer_name: str | None = "ANA NOVAK",
    payer_iban: str | None = None,
    ustrd: str | None = None,
    addtl: str | None = None,
    cdtr_ref: str | None = None,
    end_to_end: str | None = None,
    fee: str | None = None,
) -> str:
    """Build one ``Ntry`` element."""
    ccy = f' Ccy="{currency}"' if currency else ""
    parts = [f"<Amt{ccy}>{amount}</Amt>", f"<CdtDbtInd>{indicator}</CdtDbtInd>"]
    parts.append(f"<BookgDt><Dt>{booking_date}</Dt></BookgDt>")
    parts.append(f"<ValDt><Dt>{value_date}</Dt></ValDt>")
    if ref:
        parts.append(f"<AcctSvcrRef>{ref}</AcctSvcrRef>")
    if fee:
        parts.append(f'<Chrgs><Rcrd><Amt Ccy="EUR">{fee}</Amt></Rcrd></Chrgs>')

    refs = ""
    if tx_id or end_to_end:
        refs = "<Refs>"
        if end_to_end:
            refs += f"<EndToEndId>{end_to_end}</EndToEndId>"
        if tx_id:
            refs += f"<TxId>{tx_id}</TxId>"
        refs += "</Refs>"

    parties = ""
    if payer_name or payer_iban:
        parties = "<RltdPties>"
        if payer_name:
            parties += f"<Dbtr><Nm>{payer_name}</Nm></Dbtr>"
        if payer_iban:
            parties += f"<DbtrAcct><Id><IBAN>{payer_iban}</IBAN></Id></DbtrAcct>"
        parties += "</RltdPties>"

    remittance = ""
    if ustrd or addtl or cdtr_ref:
        remittance = "<RmtInf>"
        if ustrd:
            remittance += f"<Ustrd>{ustrd}</Ustrd>"
        if addtl or cdtr_ref:
            remittance += "<Strd>"
            if cdtr_ref:
                remittance += f"<CdtrRefInf><Ref>{cdtr_ref}</Ref></CdtrRefInf>"
            if addtl:
                remittance += f"<AddtlRmtInf>{addtl}</AddtlRmtInf>"
            remittance += "</Strd>"
        remittance += "</RmtInf>"

    parts.append(f"<NtryDtls><TxDtls>{refs}{parties}{remittance}</TxDtls></NtryDtls>")
    return f"<Ntry>{''.join(parts)}</Ntry>"


def camt_document(
    *entries: str,
    namespace: bool = True,
    message_id: str | None = "MSG-2024-03",
    account_iban: str | None = "SI56191000000999999",
    account_other: str | None = None,
    container: str = "Rpt",
    root: str = "BkToCstmrAcctRpt",
) -> str:
    """Build a camt.052 document around ``entries``."""
    xmlns = f' xmlns="{CAMT_NS}"' if namespace else ""
    header = "<GrpHdr>"
    if message_id:
        header += f"<MsgId>{message_id}</MsgId>"
    header += "<CreDtTm>2024-03-06T08:00:00</CreDtTm></GrpHdr>"

    account_id = ""
    if account_iban:
        account_id = f"<IBAN>{account_iban}</IBAN>"
    elif account_other:
        account_id = f"<Othr><Id>{account_other}</Id></Othr>"
    account = f"<Acct><Id>{account_id}</Id><Ownr><Nm>Test Club</Nm></Ownr></Acct>"

    return (
        '<?xml version="1.0" encoding="UTF-8"?>'
        f"<Document{xmlns}><{root}>{header}"
        f"<{container}><Id>RPT-1</Id>{account}{''.join(entries)}</{container}>"
        f"</{root}></Document>"
    )


@pytest.fixture
def sample_statement() -> str:
    """Statement with two credits and one debit."""
    return camt_document(
        camt_entry("50.00", ref="REF-001", payer_name="ANA NOVAK"),
        camt_entry("30.00", ref="REF-002", payer_name="JOHN DOE", ustrd="Fee Luka Kovač"),
        camt_entry("12.00", ref="REF-003", indicator="DBIT", payer_name="BANK"),
    )


@pytest.fixture
def tmp_statement_file(tmp_path, sample_statement) -> Generator:
    path = tmp_path / "statement-2024-03.xml"
    path.write_text(sample_statement, encoding="utf-8")
    yield path


@pytest.fixture
def build_entry() -> Callable[..., str]:
    """Factory for camt ``Ntry`` elements."""
    return camt_entry


@pytest.fixture
def build_document() -> Callable[..., str]:
    """Factory for camt documents."""
    return camt_document
