"""Fixed answers about the company, served without calling the AI service."""
from typing import Optional, Sequence, Tuple

PHONE = "+91 8590000761"
EMAIL = "contact@finaccosolutions.com"
ADDRESS = "Mecca Tower, 2nd Floor, Court Road, Near Sree Krishna Theatre, Manjeri, Kerala-676521"
ADVISORY_URL = "https://advisory.finaccosolutions.com"
CONNECT_URL = "https://connect.finaccosolutions.com"

HOURS = """* Monday - Saturday: 9:30 AM - 6:00 PM
* Sunday: Closed"""

COMPANY_INFO = f"""**About Finacco Solutions**

Finacco Solutions is a comprehensive financial and technology services provider offering:

* Financial Services:
  - GST Registration and Returns
  - Income Tax Filing
  - Business Consultancy
  - Company & LLP Services
  - TDS/TCS Services
  - Bookkeeping Services

* Technology Solutions:
  - Tally Prime Solutions
  - Data Import Tools
  - Financial Statement Preparation
  - Bank Reconciliation Tools
  - Custom Software Development
  - Web Development Services

**Contact Information:**
* Phone: {PHONE}
* Email: {EMAIL}
* Location: {ADDRESS}

**Business Hours:**
{HOURS}

Visit our service platforms:
* [Finacco Advisory]({ADVISORY_URL}) - For all financial advisory services
* [Finacco Connect]({CONNECT_URL}) - For business utility software and Tally solutions
"""

CONTACT_INFO = f"""**Contact Information for Finacco Solutions:**

* Phone: {PHONE}
* Email: {EMAIL}
* Address: {ADDRESS}

**Office Hours:**
{HOURS}

Feel free to reach out to us through WhatsApp or email for quick responses.
"""

CONNECT_INFO = f"""**Finacco Connect Services:**

Visit [Finacco Connect]({CONNECT_URL}) for:
* Tally Prime Solutions
  - Sales and Implementation
  - Training and Support
  - Customization Services
* Data Import Tools
  - Bank Statement Import
  - Tally Data Migration
  - Excel to Tally Integration
* Financial Statement Preparation
* Bank Reconciliation Tools
* Business Utility Software

For detailed information or support:
* Phone: {PHONE}
* Email: {EMAIL}
"""

ADVISORY_INFO = f"""**Finacco Advisory Services:**

Visit [Finacco Advisory]({ADVISORY_URL}) for:

* GST Services:
  - Registration
  - Monthly/Quarterly Returns
  - Annual Returns
  - GST Audit Support
  - E-way Bill Services

* Income Tax Services:
  - Individual Tax Filing
  - Business Tax Returns
  - Tax Planning
  - TDS Returns
  - Form 16/16A Generation

* Business Services:
  - Company Registration
  - LLP Formation
  - Business Consultancy
  - Bookkeeping Services
  - Financial Advisory

Contact us for professional assistance:
* Phone: {PHONE}
* Email: {EMAIL}
"""

# Checked in order; the first topic with a keyword in the query wins
TOPICS: Sequence[Tuple[Tuple[str, ...], str]] = (
    (("about finacco", "company information", "finacco solutions"), COMPANY_INFO),
    (("contact", "phone", "email", "address"), CONTACT_INFO),
    (("tally", "import", "connect", "utility software"), CONNECT_INFO),
    (("advisory", "financial services"), ADVISORY_INFO),
)


def canned_response(text: str) -> Optional[str]:
    lowered = (text or "").lower()
    for keywords, answer in TOPICS:
        if any(k in lowered for k in keywords):
            return answer
    return None
