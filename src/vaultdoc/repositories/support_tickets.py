from vaultdoc.docstore.repository import Repository
from vaultdoc.models.support_ticket import SupportTicket


class SupportTicketRepository(Repository[SupportTicket]):
    table = "support_tickets"
    model = SupportTicket
    touched = "updated_at"
