"""Outbound mail endpoints."""

from __future__ import annotations

from fastapi import APIRouter, Depends, File, Form, Query, UploadFile

from mail_mirror.api.deps import MailboxServices, get_services
from mail_mirror.models import BatchSendResult, SendResponse, SentMailList
from mail_mirror.outbound import Attachment

router = APIRouter(prefix="/api", tags=["outbound"])


@router.post("/send", response_model=SendResponse)
async def send_email(
    to: str = Form(...),
    subject: str = Form(default=""),
    message: str = Form(default=""),
    attachments: list[UploadFile] = File(default=[]),
    services: MailboxServices = Depends(get_services),
) -> SendResponse:
    files = [
        Attachment(
            filename=f.filename or "attachment",
            content=await f.read(),
            content_type=f.content_type,
        )
        for f in attachments
    ]
    await services.mailer.send_one(to=to, subject=subject, body=message, attachments=files)
    return SendResponse(message="Email sent successfully!")


@router.post("/send/spreadsheet", response_model=BatchSendResult)
async def send_spreadsheet(
    excel: UploadFile = File(...),
    services: MailboxServices = Depends(get_services),
) -> BatchSendResult:
    return await services.mailer.send_spreadsheet(await excel.read())


@router.get("/sent", response_model=SentMailList)
def sent_emails(
    limit: int | None = Query(default=None, ge=1, le=500),
    services: MailboxServices = Depends(get_services),
) -> SentMailList:
    return SentMailList(
        sent_emails=services.sent_log.list_recent(limit or services.settings.sent_list_limit)
    )
