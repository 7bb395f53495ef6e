from __future__ import annotations

import copy
from datetime import datetime, timezone
from typing import Any

from care_refresh.core.models import DataKind, SourceRecord
from care_refresh.providers.base import BaseSourceAdapter

_FIVE_DAY_WEEK = {
    "monday": "9:00 AM - 5:00 PM",
    "tuesday": "9:00 AM - 5:00 PM",
    "wednesday": "9:00 AM - 5:00 PM",
    "thursday": "9:00 AM - 5:00 PM",
    "friday": "9:00 AM - 5:00 PM",
    "saturday": "Closed",
    "sunday": "Closed",
}

STATIC_FACILITIES: dict[str, list[dict[str, Any]]] = {
    "IN": [
        {
            "name": "Planned Parenthood - Georgetown Health Center",
            "address": "8590 Georgetown Road",
            "city": "Indianapolis",
            "state": "IN",
            "zipCode": "46268",
            "latitude": "39.908760",
            "longitude": "-86.258360",
            "type": "general",
            "phone": "(317) 872-5455",
            "website": "https://www.plannedparenthood.org/health-center/indiana/indianapolis/46268/georgetown-health-center-2883-91810",
            "acceptsInsurance": True,
            "isVerified": True,
            "services": [
                "Annual Exams",
                "Birth Control",
                "HIV Testing",
                "STD Testing & Treatment",
                "Pregnancy Testing",
                "Emergency Contraception",
                "HPV Vaccination",
            ],
            "operatingHours": {
                **_FIVE_DAY_WEEK,
                "wednesday": "11:00 AM - 7:00 PM",
                "friday": "9:00 AM - 4:00 PM",
            },
        },
        {
            "name": "Franciscan Health Women's Clinic",
            "address": "3920 St Francis Way Suites 100 & 110",
            "city": "Lafayette",
            "state": "IN",
            "zipCode": "47905",
            "latitude": "40.3935",
            "longitude": "-86.8350",
            "type": "Women's Health Center",
            "facilityType": "Women's Health Center",
            "phone": "(765) 555-0400",
            "website": "https://www.franciscanhealth.org",
            "acceptsInsurance": True,
            "isVerified": True,
            "services": [
                "Women's Health",
                "Obstetrics",
                "Gynecology",
                "Prenatal Care",
                "Family Planning",
                "Reproductive Health",
            ],
            "operatingHours": {
                "monday": "8:00 AM - 5:00 PM",
                "tuesday": "8:00 AM - 5:00 PM",
                "wednesday": "8:00 AM - 5:00 PM",
                "thursday": "8:00 AM - 5:00 PM",
                "friday": "8:00 AM - 5:00 PM",
                "saturday": "Closed",
                "sunday": "Closed",
            },
            "languages": ["English", "Spanish"],
            "amenities": ["Wheelchair Accessible", "Free Parking", "On-site Lab Services"],
            "waitTime": "1-2 weeks",
            "emergencyServices": True,
            "telehealth": True,
            "financialAssistance": ["Insurance", "Financial Assistance Program"],
        },
    ],
    "IL": [
        {
            "name": "Planned Parenthood - Chicago",
            "address": "1200 N LaSalle Dr",
            "city": "Chicago",
            "state": "IL",
            "zipCode": "60610",
            "latitude": "41.904530",
            "longitude": "-87.631830",
            "type": "general",
            "phone": "(312) 573-7200",
            "website": "https://www.plannedparenthood.org/health-center/illinois/chicago",
            "acceptsInsurance": True,
            "isVerified": True,
            "services": [
                "Birth Control",
                "STD Testing",
                "STD Treatment",
                "Cancer Screenings",
                "Pregnancy Testing",
                "Emergency Contraception",
                "Abortion Services",
                "Well Woman Exams",
            ],
            "operatingHours": {**_FIVE_DAY_WEEK, "saturday": "8:00 AM - 2:00 PM"},
        },
        {
            "name": "Planned Parenthood - Champaign Health Center",
            "address": "302 E Stoughton St Suite #2",
            "city": "Champaign",
            "state": "IL",
            "zipCode": "61820",
            "latitude": "40.1164",
            "longitude": "-88.2350",
            "type": "Health Center",
            "facilityType": "Health Center",
            "phone": "(217) 555-0100",
            "website": "https://www.plannedparenthood.org",
            "acceptsInsurance": True,
            "isVerified": True,
            "services": [
                "Birth Control",
                "STI Testing",
                "Cancer Screenings",
                "Pregnancy Testing",
                "Abortion Services",
                "Family Planning",
                "Reproductive Health",
            ],
            "operatingHours": {**_FIVE_DAY_WEEK, "saturday": "9:00 AM - 2:00 PM"},
            "languages": ["English", "Spanish"],
            "amenities": ["Wheelchair Accessible", "Public Transit Access", "Private Consultation Rooms"],
            "waitTime": "1-2 days",
            "emergencyServices": True,
            "telehealth": True,
            "financialAssistance": ["Sliding Scale", "Financial Assistance Available"],
        },
    ],
}


def static_facilities(region: str) -> list[dict[str, Any]]:
    return copy.deepcopy(STATIC_FACILITIES.get(region.upper(), []))


def curated_laws(region: str, today: datetime) -> list[dict[str, Any]]:
    as_of = today.date().isoformat()
    effective = today.isoformat()
    return [
        {
            "state": region,
            "title": "Women's Healthcare Rights Overview",
            "content": (
                f"As of {as_of}, women in {region} have various healthcare rights and protections. "
                "The National Women's Law Center (nwlc.org) provides comprehensive information about healthcare "
                "rights and protections. For detailed state-specific information, visit your state's health "
                "department website."
            ),
            "category": "General",
            "source": "National Women's Law Center - nwlc.org/healthcare",
            "effectiveDate": effective,
        },
        {
            "state": region,
            "title": "Maternal Health Coverage",
            "content": (
                f"{region} provides various maternal health services and protections. The American College of "
                "Obstetricians and Gynecologists (acog.org) provides evidence-based guidelines for maternal care. "
                "Kaiser Family Foundation (kff.org) offers detailed state-level analysis of maternal health "
                "policies and coverage options."
            ),
            "category": "Maternal Health",
            "source": "ACOG - acog.org/clinical/clinical-guidance, KFF - kff.org/womens-health-policy",
            "effectiveDate": effective,
        },
        {
            "state": region,
            "title": "Preventive Care Access",
            "content": (
                f"Women in {region} have access to various preventive care services. The Guttmacher Institute "
                "provides comprehensive analysis of state policies affecting reproductive healthcare access. For "
                "detailed information about preventive services coverage, visit "
                "healthcare.gov/preventive-care-women/."
            ),
            "category": "Preventive Care",
            "source": "Guttmacher Institute - guttmacher.org/state-policy",
            "effectiveDate": effective,
        },
        {
            "state": region,
            "title": "Workplace Rights and Accommodations",
            "content": (
                f"{region} has specific laws protecting women's rights in the workplace. The National Partnership "
                "for Women & Families (nationalpartnership.org) provides detailed resources about workplace "
                "rights, including pregnancy accommodations and protection against discrimination."
            ),
            "category": "Workplace Rights",
            "source": "National Partnership for Women & Families - nationalpartnership.org/our-work/workplace",
            "effectiveDate": effective,
        },
    ]


class StaticFallbackAdapter(BaseSourceAdapter):
    """Curated facilities for known regions, used when live sources are empty."""

    source_name = "static_fallback"
    kind = DataKind.FACILITIES

    async def fetch_records(self, region: str) -> list[SourceRecord]:
        return [self.build_record(region, item) for item in static_facilities(region)]


class CuratedLawAdapter(BaseSourceAdapter):
    source_name = "curated_laws"
    kind = DataKind.LAWS

    async def fetch_records(self, region: str) -> list[SourceRecord]:
        today = datetime.now(timezone.utc)
        return [self.build_record(region, item) for item in curated_laws(region, today)]
