"""ISO 20022 camt.052 bank-to-customer account report importer.

Only credit entries (``CdtDbtInd`` = ``CRDT``) are extracted. camt.053
statements (``Stmt`` instead of ``Rpt``) share the entry layout and are
accepted as well.

Element lookup works with and without the ISO 20022 default namespace: a
plain path query is tried first, then the same path with every step matched
by local name only.
"""

import time
import uuid
import xml.etree.ElementTree as ET
from datetime import date
from decimal import Decimal, InvalidOperation

from ....exceptions import FormatError, SchemaError
from ....utils.logging import get_logger
from ...domain.value_objects import ParsedStatement, ParsedTransaction, StatementHeader
from .base import BaseImporter, FileFormat

logger = get_logger(__name__)

CREDIT = "CRDT"
NOT_PROVIDED = "NOTPROVIDED"


def _local_path(path: str) -> str:
    """Turn ``a/b//c`` into ``{*}a/{*}b//{*}c``."""
    steps = []
    for step in path.split("/"):
        if step in ("", ".", ".."):
            steps.append(step)
        else:
            steps.append(f"{{*}}{step}")
    return "/".join(steps)


def find(element: ET.Element, path: str) -> ET.Element | None:
    """Find the first element at ``path``, namespace-agnostic."""
    found = element.find(path)
    if found is None:
        found = element.find(_local_path(path))
    return found


def find_all(element: ET.Element, path: str) -> list[ET.Element]:
    found = element.findall(path)
    if not found:
        found = element.findall(_local_path(path))
    return found


def find_text(element: ET.Element, *paths: str) -> str | None:
    """Return the stripped text of the first path that has any."""
    for path in paths:
        node = find(element, path)
        if node is not None and node.text and node.text.strip():
            return node.text.strip()
    return None


def generate_external_ref() -> str:
    """Fallback identifier ``tx-<epoch-ms>-<7 chars>`` for entries without a bank reference."""
    return f"tx-{int(time.time() * 1000)}-{uuid.uuid4().hex[:7]}"


class Camt052Importer(BaseImporter):
    """Parser for camt.052 (and camt.053) XML documents.

    Example:
        >>> importer = Camt052Importer()
        >>> statement = importer.parse(xml_text)
        >>> statement.header.account_id
        'SI56191000000123438'
    """

    file_format = FileFormat.CAMT052

    def parse(self, content: str | bytes) -> ParsedStatement:
        try:
            root = ET.fromstring(content)
        except ET.ParseError as e:
            raise FormatError(
                f"Invalid XML document: {e}",
                file_format=self.file_format.value,
                original_error=e,
            ) from e

        header = self._parse_header(root)
        reports = find_all(root, ".//Rpt") or find_all(root, ".//Stmt")

        transactions = []
        skipped = 0
        for report in reports:
            for entry in find_all(report, "Ntry"):
                if find_text(entry, "CdtDbtInd") != CREDIT:
                    skipped += 1
                    continue
                transactions.append(self._parse_entry(entry))

        logger.info(
            "statement_parsed",
            message_id=header.message_id,
            credits=len(transactions),
            skipped_debits=skipped,
            generated_refs=sum(1 for tx in transactions if tx.generated_ref),
        )
        return ParsedStatement(header=header, transactions=transactions)

    def _parse_header(self, root: ET.Element) -> StatementHeader:
        message_id = find_text(root, ".//GrpHdr/MsgId")
        if message_id is None:
            raise SchemaError(
                "Statement has no message id",
                element="GrpHdr/MsgId",
                file_format=self.file_format.value,
            )

        report = find(root, ".//Rpt")
        if report is None:
            report = find(root, ".//Stmt")
        if report is None:
            raise SchemaError(
                "Statement has no report or statement block",
                element="Rpt",
                file_format=self.file_format.value,
            )

        account_id = find_text(report, "Acct/Id/IBAN", "Acct/Id/Othr/Id")
        if account_id is None:
            raise SchemaError(
                "Statement has no account identifier",
                element="Rpt/Acct/Id/IBAN",
                file_format=self.file_format.value,
            )

        return StatementHeader(
            message_id=message_id,
            created_at=find_text(root, ".//GrpHdr/CreDtTm") or "",
            account_id=account_id,
            account_owner=find_text(report, "Acct/Ownr/Nm") or "",
        )

    def _parse_entry(self, entry: ET.Element) -> ParsedTransaction:
        amount_node = find(entry, "Amt")
        if amount_node is None or not (amount_node.text or "").strip():
            raise SchemaError(
                "Credit entry has no amount",
                element="Ntry/Amt",
                file_format=self.file_format.value,
            )
        amount = self._decimal(amount_node.text, "Ntry/Amt")
        currency = (amount_node.get("Ccy") or self.settings.default_currency).upper()

        external_ref = find_text(entry, "AcctSvcrRef", "NtryDtls/TxDtls/Refs/TxId")
        generated = external_ref is None
        if generated:
            external_ref = generate_external_ref()
            logger.warning("statement_entry_without_reference", external_ref=external_ref)

        fee_text = find_text(entry, "Chrgs//Amt")
        reference = find_text(
            entry,
            "NtryDtls/TxDtls/RmtInf/Strd/CdtrRefInf/Ref",
            "NtryDtls/TxDtls/Refs/EndToEndId",
        )
        if reference == NOT_PROVIDED:
            reference = None

        return ParsedTransaction(
            external_ref=external_ref,
            amount=amount,
            currency=currency,
            booking_date=self._date(entry, "BookgDt"),
            value_date=self._date(entry, "ValDt"),
            payer_name=find_text(entry, "NtryDtls/TxDtls/RltdPties/Dbtr/Nm")
            or self.settings.unknown_payer_name,
            payer_account_id=find_text(entry, "NtryDtls/TxDtls/RltdPties/DbtrAcct/Id/IBAN"),
            description=find_text(
                entry,
                "NtryDtls/TxDtls/RmtInf/Strd/AddtlRmtInf",
                "NtryDtls/TxDtls/RmtInf/Ustrd",
            )
            or "",
            reference=reference,
            bank_fee=self._decimal(fee_text, "Chrgs/Amt") if fee_text else Decimal("0.00"),
            generated_ref=generated,
        )

    def _decimal(self, text: str | None, element: str) -> Decimal:
        try:
            value = Decimal((text or "").strip())
        except InvalidOperation as e:
            raise FormatError(
                f"Invalid amount '{text}'",
                file_format=self.file_format.value,
                context={"element": element},
                original_error=e,
            ) from e

        # NaN and Infinity parse without error
        if not value.is_finite():
            raise FormatError(
                f"Invalid amount '{text}'",
                file_format=self.file_format.value,
                context={"element": element},
            )
        return value

    def _date(self, entry: ET.Element, container: str) -> date | None:
        """Read ``<container>/Dt`` or the date part of ``<container>/DtTm``."""
        text = find_text(entry, f"{container}/Dt")
        if text is None:
            date_time = find_text(entry, f"{container}/DtTm")
            text = date_time[:10] if date_time else None
        if text is None:
            return None

        try:
            return date.fromisoformat(text)
        except ValueError as e:
            raise FormatError(
                f"Invalid date '{text}'",
                file_format=self.file_format.value,
                context={"element": f"{container}/Dt"},
                original_error=e,
            ) from e
