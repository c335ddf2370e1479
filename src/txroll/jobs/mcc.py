# mcc.py
# SPDX-License-Identifier: MIT
"""Merchant category code descriptions and general categories."""

from __future__ import annotations

__all__ = ["MCC_DESCRIPTIONS", "describe_mcc", "general_category"]

MCC_DESCRIPTIONS: dict[str, str] = {
    "1711": "Heating, Plumbing, Air Conditioning Contractors",
    "3001": "Steel Products Manufacturing",
    "3005": "Miscellaneous Metal Fabrication",
    "3006": "Miscellaneous Fabricated Metal Products",
    "3007": "Coated and Laminated Products",
    "3008": "Steel Drums and Barrels",
    "3009": "Fabricated Structural Metal Products",
    "3058": "Tools, Parts, Supplies Manufacturing",
    "3066": "Miscellaneous Metals",
    "3075": "Bolt, Nut, Screw, Rivet Manufacturing",
    "3132": "Leather Goods",
    "3144": "Floor Covering Stores",
    "3174": "Upholstery and Drapery Stores",
    "3256": "Brick, Stone, and Related Materials",
    "3260": "Pottery and Ceramics",
    "3359": "Non-Ferrous Metal Foundries",
    "3387": "Electroplating, Plating, Polishing Services",
    "3389": "Non-Precious Metal Services",
    "3390": "Miscellaneous Metalwork",
    "3393": "Heat Treating Metal Services",
    "3395": "Welding Repair",
    "3405": "Ironwork",
    "3504": "Gardening Supplies",
    "3509": "Industrial Equipment and Supplies",
    "3596": "Miscellaneous Machinery and Parts Manufacturing",
    "3640": "Lighting, Fixtures, Electrical Supplies",
    "3684": "Semiconductors and Related Devices",
    "3722": "Passenger Railways",
    "3730": "Ship Chandlers",
    "3771": "Railroad Passenger Transport",
    "3775": "Railroad Freight",
    "3780": "Computer Network Services",
    "4111": "Local and Suburban Commuter Transportation",
    "4112": "Passenger Railways",
    "4121": "Taxicabs and Limousines",
    "4131": "Bus Lines",
    "4214": "Motor Freight Carriers and Trucking",
    "4411": "Cruise Lines",
    "4511": "Airlines",
    "4722": "Travel Agencies",
    "4784": "Tolls and Bridge Fees",
    "4814": "Telecommunication Services",
    "4829": "Money Transfer",
    "4899": "Cable, Satellite, and Other Pay Television Services",
    "4900": "Utilities - Electric, Gas, Water, Sanitary",
    "5045": "Computers, Computer Peripheral Equipment",
    "5094": "Precious Stones and Metals",
    "5192": "Books, Periodicals, Newspapers",
    "5193": "Florists Supplies, Nursery Stock and Flowers",
    "5211": "Lumber and Building Materials",
    "5251": "Hardware Stores",
    "5261": "Lawn and Garden Supply Stores",
    "5300": "Wholesale Clubs",
    "5310": "Discount Stores",
    "5311": "Department Stores",
    "5411": "Grocery Stores, Supermarkets",
    "5499": "Miscellaneous Food Stores",
    "5533": "Automotive Parts and Accessories Stores",
    "5541": "Service Stations",
    "5621": "Women's Ready-To-Wear Stores",
    "5651": "Family Clothing Stores",
    "5655": "Sports Apparel, Riding Apparel Stores",
    "5661": "Shoe Stores",
    "5712": "Furniture, Home Furnishings, and Equipment Stores",
    "5719": "Miscellaneous Home Furnishing Stores",
    "5722": "Household Appliance Stores",
    "5732": "Electronics Stores",
    "5733": "Music Stores - Musical Instruments",
    "5812": "Eating Places and Restaurants",
    "5813": "Drinking Places (Alcoholic Beverages)",
    "5814": "Fast Food Restaurants",
    "5815": "Digital Goods - Media, Books, Apps",
    "5816": "Digital Goods - Games",
    "5912": "Drug Stores and Pharmacies",
    "5921": "Package Stores, Beer, Wine, Liquor",
    "5932": "Antique Shops",
    "5941": "Sporting Goods Stores",
    "5942": "Book Stores",
    "5947": "Gift, Card, Novelty Stores",
    "5970": "Artist Supply Stores, Craft Shops",
    "5977": "Cosmetic Stores",
    "6300": "Insurance Sales, Underwriting",
    "7011": "Lodging - Hotels, Motels, Resorts",
    "7210": "Laundry Services",
    "7230": "Beauty and Barber Shops",
    "7276": "Tax Preparation Services",
    "7349": "Cleaning and Maintenance Services",
    "7393": "Detective Agencies, Security Services",
    "7531": "Automotive Body Repair Shops",
    "7538": "Automotive Service Shops",
    "7542": "Car Washes",
    "7549": "Towing Services",
    "7801": "Athletic Fields, Commercial Sports",
    "7802": "Recreational Sports, Clubs",
    "7832": "Motion Picture Theaters",
    "7922": "Theatrical Producers",
    "7995": "Betting (including Lottery Tickets, Casinos)",
    "7996": "Amusement Parks, Carnivals, Circuses",
    "8011": "Doctors, Physicians",
    "8021": "Dentists and Orthodontists",
    "8041": "Chiropractors",
    "8043": "Optometrists, Optical Goods and Eyeglasses",
    "8049": "Podiatrists",
    "8062": "Hospitals",
    "8099": "Medical Services",
    "8111": "Legal Services and Attorneys",
    "8931": "Accounting, Auditing, and Bookkeeping Services",
    "9402": "Postal Services - Government Only",
}

_GENERAL_CATEGORIES = {
    "1": "Contracted Services",
    "2": "Airlines",
    "3": "Manufacturing",
    "4": "Transportation",
    "5": "Retail",
    "6": "Financial",
    "7": "Services",
    "8": "Professional",
    "9": "Government",
}


def describe_mcc(mcc: str) -> str:
    """Human-readable description, or ``Unknown MCC <code>``."""
    return MCC_DESCRIPTIONS.get(mcc, f"Unknown MCC {mcc}")


def general_category(mcc: str) -> str:
    """Broad category from the code's first digit."""
    return _GENERAL_CATEGORIES.get(mcc[:1], "Other")
