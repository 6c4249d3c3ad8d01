# FILE: src/cbz2kindle/infrastructure/delivery/smtp.py
import smtplib
import ssl
from email.message import EmailMessage
from pathlib import Path

from loguru import logger
from pybreaker import CircuitBreaker, CircuitBreakerError

from ...domain.interfaces import IDeliveryDispatcher
from ...shared.constants import MIME_TYPES
from ...shared.exceptions import DeliveryError
from ...shared.settings import DeliverySettings
from ...utils.common import human_readable_size

IMPLICIT_TLS_PORT = 465
MESSAGE_BODY = 'Converted document attached'


class SmtpDeliveryDispatcher(IDeliveryDispatcher):
    """完成したEPUBをメールに添付してKindleの受信アドレスへ送る配信クラス。"""

    def __init__(
        self, settings: DeliverySettings, breaker: CircuitBreaker | None = None
    ):
        self.settings = settings
        self.breaker = breaker or CircuitBreaker(
            fail_max=settings.circuit_breaker.fail_max,
            reset_timeout=settings.circuit_breaker.reset_timeout,
        )

    def send(self, file_path: Path) -> None:
        """
        ファイルを添付したメールを送信します。

        Raises:
            DeliveryError: 設定不足、ファイル読み込み失敗、SMTPエラーの場合。
        """
        if not self.settings.is_configured:
            raise DeliveryError(
                '配信用のメール設定(smtp_user / smtp_password / recipient)が不足しています。'
            )

        log = logger.bind(
            file_path=str(file_path), recipient=self.settings.recipient
        )
        try:
            message = self._build_message(file_path)
        except OSError as e:
            raise DeliveryError(f'添付ファイルを読み込めません: {file_path}: {e}') from e

        log.info(
            f'メール送信を開始します ({human_readable_size(file_path.stat().st_size)})'
        )
        try:
            self.breaker.call(self._transmit, message)
        except CircuitBreakerError as e:
            log.error('サーキットブレーカー作動中。メール送信を中止しました。')
            raise DeliveryError(
                'SMTPサーバーが一時的に利用できません (サーキットブレーカー作動中)。'
            ) from e
        except (smtplib.SMTPException, OSError) as e:
            log.bind(error=str(e)).error('メール送信に失敗しました。')
            raise DeliveryError(f'メール送信に失敗しました: {e}') from e

        log.success('メール送信が完了しました。')

    def verify(self) -> None:
        """
        SMTPサーバーへの接続と認証のみを行い、設定を確認します。

        Raises:
            DeliveryError: 接続または認証に失敗した場合。
        """
        if not self.settings.is_configured:
            raise DeliveryError('配信用のメール設定が不足しています。')
        try:
            with self._connect():
                pass
        except (smtplib.SMTPException, OSError) as e:
            raise DeliveryError(f'SMTPサーバーへの接続に失敗しました: {e}') from e
        logger.bind(smtp_host=self.settings.smtp_host).success(
            'SMTPサーバーへの接続と認証に成功しました。'
        )

    def _build_message(self, file_path: Path) -> EmailMessage:
        settings = self.settings
        message = EmailMessage()
        message['From'] = settings.sender or settings.smtp_user
        message['To'] = settings.recipient
        message['Subject'] = settings.subject
        message.set_content(MESSAGE_BODY)

        maintype, subtype = MIME_TYPES.EPUB.split('/')
        message.add_attachment(
            file_path.read_bytes(),
            maintype=maintype,
            subtype=subtype,
            filename=file_path.name,
        )
        return message

    def _transmit(self, message: EmailMessage) -> None:
        with self._connect() as smtp:
            smtp.send_message(message)

    def _connect(self) -> smtplib.SMTP:
        """認証済みのSMTP接続を返します。465番ポートは暗黙TLS、それ以外はSTARTTLSを使用します。"""
        settings = self.settings
        context = ssl.create_default_context()
        smtp: smtplib.SMTP
        if settings.smtp_port == IMPLICIT_TLS_PORT:
            smtp = smtplib.SMTP_SSL(
                settings.smtp_host,
                settings.smtp_port,
                timeout=settings.timeout,
                context=context,
            )
        else:
            smtp = smtplib.SMTP(
                settings.smtp_host, settings.smtp_port, timeout=settings.timeout
            )
        try:
            if settings.smtp_port != IMPLICIT_TLS_PORT:
                smtp.starttls(context=context)
            password = settings.smtp_password
            smtp.login(
                settings.smtp_user or '',
                password.get_secret_value() if password else '',
            )
        except BaseException:
            smtp.close()
            raise
        return smtp
