# backend/bulk_import/config.py
# Spreadsheet column -> form field maps for historical imports

COLUMN_MAPPINGS = {
    "CANN Contacts": {
        "fullName": "fullName",
        "email": "emailAddress",
        "amyloidosisType": "amyloidosisType",
        "areasOfInterest": "areasOfInterest",
        "communicationConsent": "communicationConsent",
        "institution": "institutionName",
        "presentingInterest": "presentingInterest",
        "professionalDesignation": "discipline",
        "subspecialty": "subspecialty"
    },
    "CAS Registration": {
        "Q2 (Yes): Full Name": "fullName",
        "Q3 (Yes): Email Address": "email",
        "Q4 (Yes): Medical Discipline": "discipline",
        "Q5 (Yes): Medical Subspecialty": "subspecialty",
        "Q6 (Yes): Center or Clinic Name/Institution": "institution",
        "Q7 (Yes): I would like to receive communication from CAS (email, newsletters)": "communicationConsent",
        "Q8 (Yes): I would like my center/clinic included in the Services Map": "servicesMapConsent",
        "Q9 (Yes): Services Map - Center Name": "centerName",
        "Q10 (Yes): Services Map - Center Address": "centerAddress",
        "Q11 (Yes): Services Map - Center Phone": "centerPhone",
        "Q12 (Yes): Services Map - Center Fax": "centerFax"
    }
}

# Imported rows are stored as submissions of the live form they came from
FORM_NAME_MAPPING = {
    "CANN Contacts": "Join CANN Today",
    "CAS Registration": "Join CAS Today"
}

DATA_SOURCES = tuple(COLUMN_MAPPINGS.keys())

SUPPORTED_EXTENSIONS = (".xlsx", ".xls", ".csv")
